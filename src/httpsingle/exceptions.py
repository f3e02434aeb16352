from typing import Any, Callable, Optional, Tuple

# Base Exceptions


class HTTPError(Exception):
    """Base exception used by this module."""

    pass


class HTTPWarning(Warning):
    """Base warning used by this module."""

    pass


_TYPE_REDUCE_RESULT = Tuple[Callable[..., object], Tuple[object, ...]]


# Engine and handle lifecycle


class EngineUnavailable(HTTPError):
    """Raised when the transfer engine cannot be loaded or used."""

    pass


class HandleCreationFailed(HTTPError):
    """Raised when an engine handle could not be created or starts out broken."""

    pass


class HandleClosedError(HTTPError):
    """Raised when a transfer is attempted on a handle that has been released."""

    pass


class OptionRejected(HTTPError):
    """Raised when the engine refuses a configuration value."""

    def __init__(self, option: Any, value: Any, reason: Optional[str] = None) -> None:
        self.option = option
        self.value = value
        self.reason = reason

        message = f"Option {option} rejected value {value!r}"
        if reason:
            message += f": {reason}"
        super().__init__(message)

    def __reduce__(self) -> _TYPE_REDUCE_RESULT:
        # For pickling purposes.
        return self.__class__, (self.option, self.value, self.reason)


class TransferFailed(HTTPError):
    """Raised when a transfer produced neither data nor headers.

    :param url: The requested URL
    :param reason: The engine's error message, if it reported one
    :param errno: The engine's error code, ``0`` when it reported none
    """

    def __init__(self, url: str, reason: Optional[str] = None, errno: int = 0) -> None:
        self.url = url
        self.reason = reason
        self.errno = errno

        message = f"Transfer failed for url: {url}"
        if reason:
            message += f" (Caused by {reason})"
        super().__init__(message)

    def __reduce__(self) -> _TYPE_REDUCE_RESULT:
        # For pickling purposes.
        return self.__class__, (self.url, self.reason, self.errno)


# Requests


class RequestBodyError(HTTPError):
    """Raised when a request body cannot be read, e.g. an unreadable PUT file."""

    pass


class RequestPreparedError(HTTPError):
    """Raised when a request is modified after it was prepared."""

    pass


class LocationValueError(ValueError, HTTPError):
    """Raised when there is something wrong with a given URL input."""

    pass


class LocationParseError(LocationValueError):
    """Raised when parse_url or similar fails to parse the URL input."""

    def __init__(self, location: str) -> None:
        message = f"Failed to parse: {location}"
        super().__init__(message)

        self.location = location

    def __reduce__(self) -> _TYPE_REDUCE_RESULT:
        return self.__class__, (self.location,)


# Responses


class HeaderParsingError(HTTPError):
    """Raised when a received header line cannot be understood."""

    def __init__(self, line: str, reason: str = "malformed header line") -> None:
        self.line = line
        self.reason = reason
        super().__init__(f"{reason}: {line!r}")

    def __reduce__(self) -> _TYPE_REDUCE_RESULT:
        return self.__class__, (self.line, self.reason)


class DecodeError(HTTPError):
    """Raised when automatic decoding based on Content-Encoding fails."""

    pass


# Warnings


class SecurityWarning(HTTPWarning):
    """Warned when performing security reducing actions"""

    pass


class InsecureRequestWarning(SecurityWarning):
    """Warned when making an unverified HTTPS request."""

    pass
