"""rascal errors."""


class RascalError(Exception):
    """Base class for every error rascal reports to the user."""


class SpecError(RascalError):
    """The request spec could not be read, rendered or parsed."""


class UnsupportedMethodError(RascalError):
    """The method is valid but rascal does not send it yet."""

    def __init__(self, method: str):
        super().__init__(f"HTTP method {method} is not supported yet")
        self.method = method


class TransportError(RascalError):
    """The HTTP call itself failed."""


class CookiePersistError(RascalError):
    """A single cookie could not be stored."""


class FormatWarning(RascalError):
    """A response body could not be pretty-printed."""


class OutputWriteError(RascalError):
    """The formatted response could not be written to the output file."""
