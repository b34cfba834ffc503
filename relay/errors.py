"""Error types raised by the relay and rendered at the HTTP boundary."""


class RelayError(Exception):
    """Base class. `status_code` is the HTTP status the error maps to."""

    status_code: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(RelayError):
    """A required request field is missing."""

    status_code = 400


class ConfigurationError(RelayError):
    """The relay is not configured to talk to the provider (e.g. no API key)."""


class UpstreamError(RelayError):
    """Any failure reported by the Gemini API: network, quota, bad request."""


class FileProcessingError(RelayError):
    """An uploaded file reached a terminal state other than ACTIVE."""

    def __init__(self, message: str, file_name: str = ""):
        super().__init__(message)
        self.file_name = file_name


class PollingTimeoutError(FileProcessingError):
    """The file was still PROCESSING when the polling budget ran out."""
