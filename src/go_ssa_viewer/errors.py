"""Exceptions raised inside the SSA viewer engine."""


class ViewerError(Exception):
    """Base exception for all viewer errors."""


class WorkspaceError(ViewerError):
    """Raised when there is no usable workspace directory."""


class ToolchainError(ViewerError):
    """Raised when the Go toolchain could not be started."""


class SSANotFoundError(ViewerError):
    """Raised when the compiler output has no SSA dump for the requested function."""

    def __init__(self, function_name: str):
        self.function_name = function_name
        super().__init__(f"No SSA output found for: {function_name}")
