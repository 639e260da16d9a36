"""Structured error types for expedition."""


class ExpeditionError(Exception):
    """Base error for all orchestration failures."""
    pass


class CollaboratorUnavailableError(ExpeditionError):
    """Raised when a required external tool is not installed or enabled."""

    def __init__(self, tool_name: str, message: str = ""):
        self.tool_name = tool_name
        detail = message or "is not available. Please ensure it is installed and enabled."
        super().__init__(f"{tool_name} {detail}")


class ResolutionError(ExpeditionError):
    """Raised by a resolver when a plan cannot be produced."""

    def __init__(self, item_name: str, reason: str):
        self.item_name = item_name
        self.reason = reason
        super().__init__(f"Cannot resolve {item_name}: {reason}")


class NavigationTimeoutError(ExpeditionError):
    """Raised when travelling to a target exceeds its time budget."""

    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(f"Navigation timed out ({timeout:.0f}s).")


class ConfigError(ExpeditionError):
    """Raised when a configuration or plan file cannot be parsed."""
    pass
