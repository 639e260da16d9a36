"""Expedition: supervised gather-to-craft automation."""

__version__ = "1.0.0"
