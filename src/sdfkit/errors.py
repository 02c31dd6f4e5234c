"""Custom exception hierarchy for sdfkit."""

from __future__ import annotations


class SdfkitError(Exception):
    """Base exception for all sdfkit errors."""


class FormulaSpecError(SdfkitError):
    """Raised when a formula specification cannot be loaded, compiled or verified."""


class ScriptError(SdfkitError):
    """Base class for errors raised while compiling or running a scene script."""

    def __init__(self, message: str, line: int | None = None) -> None:
        self.message = message
        self.line = line
        if line is None:
            super().__init__(message)
        else:
            super().__init__(f"line {line}: {message}")


class ScriptSyntaxError(ScriptError):
    """Raised when a script fails to parse or uses unsupported syntax."""

    def __init__(self, message: str, line: int) -> None:
        super().__init__(message, line)


class ScriptRuntimeError(ScriptError):
    """Raised when a script fails during evaluation."""


class UnsupportedOperationError(SdfkitError):
    """Raised when a consumer meets an operation-tree variant it cannot handle."""

    def __init__(self, variant: str, consumer: str | None = None) -> None:
        self.variant = variant
        self.consumer = consumer
        where = f" in {consumer}" if consumer else ""
        super().__init__(f"Unsupported operation{where}: {variant}")


class ValidationError(SdfkitError):
    """Raised when a tree diagnostic is promoted to an error."""


class ExportError(SdfkitError):
    """Raised when writing generated artifacts or sampled grids fails."""


class TemplateError(SdfkitError):
    """Raised when a base shader template lacks an injection point."""
