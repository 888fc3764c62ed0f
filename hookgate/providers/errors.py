"""
Errors raised while decoding and validating webhook payloads.

Providers raise these from their transform steps; the provider base class
turns them into a TransformResult. Only SkipCondition is acknowledged as a
success, everything else is reported back to the sender as a client error.
"""


class HookError(Exception):
    """Base class for webhook transformation errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message

    def __eq__(self, other: object) -> bool:
        return type(self) is type(other) and self.message == other.message

    def __hash__(self) -> int:
        return hash((type(self).__name__, self.message))

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r})"


class HeaderError(HookError):
    """A required header is missing or malformed."""

    def __init__(self, message: str, header: str = ""):
        super().__init__(message)
        self.header = header


class ContentTypeError(HookError):
    """The request media type is not supported by the provider."""

    def __init__(self, message: str, content_type: str = ""):
        super().__init__(message)
        self.content_type = content_type


class DecodeError(HookError):
    """The JSON or form body could not be parsed."""


class ValidationError(HookError):
    """The payload is well formed but a required field is missing or invalid."""

    def __init__(self, message: str, field: str = ""):
        super().__init__(message)
        self.field = field


class UnsupportedEventError(HookError):
    """The platform is recognised but the event or action is not handled."""

    def __init__(self, message: str, event: str = ""):
        super().__init__(message)
        self.event = event


class SkipCondition(HookError):
    """A well formed event that intentionally does not start a build."""
