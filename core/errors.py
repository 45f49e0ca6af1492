"""
Mediator Errors
===============

Error taxonomy shared by every package.

- ProviderUnavailableError / MalformedResponseError are recoverable: call
  sites degrade to a neutral result (0, [], unchanged input).
- ConfigurationError is fatal to the single call and never retried.
- MediationError is what the facade raises when an operation it was asked to
  perform did not happen.

"No resolution" is not an error: it is a ResolutionResult with success=False.
"""

from typing import Optional


class MediatorError(Exception):
    """Base class for all mediator errors."""
    pass


class ProviderUnavailableError(MediatorError):
    """Reasoning provider or memory store could not be reached."""
    pass


class MalformedResponseError(MediatorError):
    """Provider answered with text that could not be parsed as expected."""

    def __init__(self, message: str, raw: Optional[str] = None):
        super().__init__(message)
        self.raw = raw


class ConfigurationError(MediatorError):
    """Invalid input such as a descriptor without an entity, or a missing record."""
    pass


class MediationError(MediatorError):
    """
    Wrapped failure of a facade operation.

    Example:
        MediationError("translate", "Failed to translate data from clarifier to generator: boom",
                       source="clarifier", target="generator")
    """

    def __init__(
        self,
        operation: str,
        message: str,
        source: Optional[str] = None,
        target: Optional[str] = None,
        cause: Optional[BaseException] = None
    ):
        super().__init__(message)
        self.operation = operation
        self.source = source
        self.target = target
        self.cause = cause
