"""Gather-to-craft workflow sequencing."""

from .engine import Signal, Transition, WorkflowEngine, WorkflowState

__all__ = ["Signal", "Transition", "WorkflowEngine", "WorkflowState"]
