class FetchError(Exception):
    """Base class for every failure the fetch pipeline knows how to degrade."""


class TransientNetworkError(FetchError):
    """A non-2xx response or a transport-level failure.

    Attributes:
        status_code: The HTTP status code, or None for transport failures.
        reason: The HTTP reason phrase or a short transport error description.
    """

    def __init__(self, reason: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        self.reason = reason
        if status_code is not None:
            message = f"HTTP {status_code}: {reason}"
        else:
            message = reason
        super().__init__(message)


class MalformedResponseError(FetchError):
    """The remote API answered, but not with the JSON shape we expect."""
