# synnia/errors.py
"""Exception types raised by the core."""


class SynniaError(Exception):
    """Base class for all synnia errors."""


class ManifestError(SynniaError):
    """A recipe manifest could not be parsed or is missing required fields."""

    def __init__(self, message: str, source: str | None = None):
        self.source = source
        if source:
            message = f"{source}: {message}"
        super().__init__(message)


class GraphIntegrityError(SynniaError):
    """An edit would break graph invariants (cycle, occupied handle, containment loop)."""


class ExpressionError(SynniaError):
    """A sandboxed expression was rejected or failed to evaluate."""
