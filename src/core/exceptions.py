class DomainError(Exception):
    """Base class for domain-specific errors.

    Subclasses may define an `error_code` attribute; the global error handler
    uses it to pick the response status and message.
    """

    pass


class EmptyModelOutputError(DomainError):
    """Exception raised when a language model returns no usable text."""

    pass
