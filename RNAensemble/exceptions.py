class PreconditionError(AssertionError):
    """Raised on malformed indices or missing prerequisite state.

    These are programming errors. They are never caught inside the package.
    """


class UnsupportedConfigurationError(ValueError):
    """The requested computation is not supported for this input."""


class EngineError(RuntimeError):
    """The folding engine could not produce the requested data."""


class FormatError(ValueError):
    """Malformed persisted ensemble input."""

    def __init__(self, message, filename=None, line_number=None):
        self.filename = filename
        self.line_number = line_number
        if filename is not None and line_number is not None:
            message = f"{filename}:{line_number}: {message}"
        elif filename is not None:
            message = f"{filename}: {message}"
        super().__init__(message)


def require(condition, message):
    if not condition:
        raise PreconditionError(message)
