"""
The transfer engine: a curl-style handle driving :mod:`http.client`.

A :class:`TransferHandle` holds an option table set through
:meth:`TransferHandle.setopt`, hands every received header line to the
registered header function and either buffers the body (return-transfer
mode) or passes it to a write function. Failures never escape
:meth:`TransferHandle.perform`; they are recorded as an error code and a
message that can be queried and cleared.
"""

import enum
import http.client
import logging
import socket
import time
from typing import IO, Any, Callable, Dict, List, Optional, Union

from ._collections import HTTPHeaderDict
from .connection import (
    BaseSSLError,
    HTTPConnection,
    HTTPResponse,
    HTTPSConnection,
    port_by_scheme,
    ssl,
)
from .exceptions import EngineUnavailable, HandleClosedError, OptionRejected
from .util.request import make_headers
from .util.url import parse_url, resolve_location

log = logging.getLogger(__name__)

REDIRECT_STATUSES = frozenset([301, 302, 303, 307, 308])

# Headers describing a request body, dropped when a redirect turns the request into a GET.
_BODY_HEADERS = frozenset(
    [
        "content-encoding",
        "content-language",
        "content-location",
        "content-type",
        "content-length",
        "digest",
        "last-modified",
    ]
)

_TYPE_HEADER_FUNCTION = Callable[[str], Optional[int]]
_TYPE_WRITE_FUNCTION = Callable[[bytes], Any]
_TYPE_PERFORM_RESULT = Union[bytes, bool]


class Opt(enum.Enum):
    """Options understood by :meth:`TransferHandle.setopt`."""

    URL = "url"
    CUSTOMREQUEST = "customrequest"
    HTTPHEADER = "httpheader"
    POSTFIELDS = "postfields"
    UPLOAD = "upload"
    READDATA = "readdata"
    INFILESIZE = "infilesize"
    CONNECTTIMEOUT = "connecttimeout"
    TIMEOUT = "timeout"
    FOLLOWLOCATION = "followlocation"
    MAXREDIRS = "maxredirs"
    RETURNTRANSFER = "returntransfer"
    HEADERFUNCTION = "headerfunction"
    WRITEFUNCTION = "writefunction"
    USERAGENT = "useragent"
    ENCODING = "encoding"
    COOKIE = "cookie"
    REFERER = "referer"
    SSL_VERIFYPEER = "ssl_verifypeer"


class ErrorCode(enum.IntEnum):
    """Transfer error codes, numbered like libcurl's ``CURLcode``."""

    OK = 0
    UNSUPPORTED_PROTOCOL = 1
    URL_MALFORMAT = 3
    COULDNT_RESOLVE_HOST = 6
    COULDNT_CONNECT = 7
    WEIRD_SERVER_REPLY = 8
    WRITE_ERROR = 23
    READ_ERROR = 26
    OPERATION_TIMEDOUT = 28
    SSL_CONNECT_ERROR = 35
    ABORTED_BY_CALLBACK = 42
    TOO_MANY_REDIRECTS = 47
    SEND_ERROR = 55
    RECV_ERROR = 56


class _TransferError(Exception):
    def __init__(self, code: ErrorCode, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _check_url(value: Any) -> Optional[str]:
    if not isinstance(value, str) or not value:
        return "expected a non-empty string"
    return None


def _check_timeout(value: Any) -> Optional[str]:
    if value is None:
        return None
    if not _is_number(value) or value <= 0:
        return "expected a positive number or None"
    return None


def _check_bool(value: Any) -> Optional[str]:
    if not isinstance(value, bool):
        return "expected a bool"
    return None


def _check_optional_str(value: Any) -> Optional[str]:
    if value is not None and not isinstance(value, str):
        return "expected a string or None"
    return None


def _check_optional_callable(value: Any) -> Optional[str]:
    if value is not None and not callable(value):
        return "expected a callable or None"
    return None


def _check_headers(value: Any) -> Optional[str]:
    if not isinstance(value, (list, tuple)):
        return "expected a list of 'Name: value' strings"
    for line in value:
        if not isinstance(line, str) or ":" not in line:
            return f"malformed header line {line!r}"
        if "\r" in line or "\n" in line:
            return f"header line contains a line break {line!r}"
    return None


def _check_postfields(value: Any) -> Optional[str]:
    if value is not None and not isinstance(value, (str, bytes)):
        return "expected str, bytes or None"
    return None


def _check_readdata(value: Any) -> Optional[str]:
    if value is not None and not hasattr(value, "read"):
        return "expected a readable file object or None"
    return None


def _check_infilesize(value: Any) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, int) or isinstance(value, bool) or value < 0:
        return "expected a non-negative int or None"
    return None


def _check_maxredirs(value: Any) -> Optional[str]:
    if not isinstance(value, int) or isinstance(value, bool) or value < -1:
        return "expected an int >= -1"
    return None


_VALIDATORS: Dict[Opt, Callable[[Any], Optional[str]]] = {
    Opt.URL: _check_url,
    Opt.CUSTOMREQUEST: _check_optional_str,
    Opt.HTTPHEADER: _check_headers,
    Opt.POSTFIELDS: _check_postfields,
    Opt.UPLOAD: _check_bool,
    Opt.READDATA: _check_readdata,
    Opt.INFILESIZE: _check_infilesize,
    Opt.CONNECTTIMEOUT: _check_timeout,
    Opt.TIMEOUT: _check_timeout,
    Opt.FOLLOWLOCATION: _check_bool,
    Opt.MAXREDIRS: _check_maxredirs,
    Opt.RETURNTRANSFER: _check_bool,
    Opt.HEADERFUNCTION: _check_optional_callable,
    Opt.WRITEFUNCTION: _check_optional_callable,
    Opt.USERAGENT: _check_optional_str,
    Opt.ENCODING: _check_optional_str,
    Opt.COOKIE: _check_optional_str,
    Opt.REFERER: _check_optional_str,
    Opt.SSL_VERIFYPEER: _check_bool,
}

_DEFAULTS: Dict[Opt, Any] = {
    Opt.URL: None,
    Opt.CUSTOMREQUEST: None,
    Opt.HTTPHEADER: [],
    Opt.POSTFIELDS: None,
    Opt.UPLOAD: False,
    Opt.READDATA: None,
    Opt.INFILESIZE: None,
    Opt.CONNECTTIMEOUT: None,
    Opt.TIMEOUT: None,
    Opt.FOLLOWLOCATION: False,
    # -1 means unlimited, as with CURLOPT_MAXREDIRS
    Opt.MAXREDIRS: -1,
    Opt.RETURNTRANSFER: False,
    Opt.HEADERFUNCTION: None,
    Opt.WRITEFUNCTION: None,
    Opt.USERAGENT: None,
    Opt.ENCODING: None,
    Opt.COOKIE: None,
    Opt.REFERER: None,
    Opt.SSL_VERIFYPEER: True,
}


class TransferHandle:
    """
    One configured HTTP transfer session.

    ``perform()`` returns the body as ``bytes`` when
    :attr:`Opt.RETURNTRANSFER` is set, ``True`` otherwise, and ``False`` when
    the transfer failed; :attr:`errno` and :attr:`error` then describe why.
    """

    #: Set to ``False`` on subclasses whose backend could not be loaded.
    available: bool = True

    #: Size of the chunks read from the socket.
    blocksize: int = 16384

    ConnectionCls = HTTPConnection
    ConnectionSSLCls = HTTPSConnection

    def __init__(self) -> None:
        self._options: Dict[Opt, Any] = dict(_DEFAULTS)
        self._conn: Optional[HTTPConnection] = None
        self._closed = False
        self.errno = ErrorCode.OK
        self.error = ""
        self._info: Dict[str, Any] = {}
        log.debug("Created transfer handle %#x", id(self))

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"<{type(self).__name__} {state} url={self._options[Opt.URL]!r}>"

    @property
    def closed(self) -> bool:
        return self._closed

    def setopt(self, option: Opt, value: Any) -> None:
        """Set one option, raising :class:`OptionRejected` on a bad value."""
        if self._closed:
            raise HandleClosedError("Cannot configure a closed handle")
        if not isinstance(option, Opt):
            raise OptionRejected(option, value, "unknown option")

        reason = _VALIDATORS[option](value)
        if reason:
            raise OptionRejected(option, value, reason)

        if option is Opt.URL:
            scheme = parse_url(value).scheme or "http"
            if scheme not in port_by_scheme:
                raise OptionRejected(option, value, f"unsupported scheme {scheme}")
            if scheme == "https" and ssl is None:
                raise EngineUnavailable(
                    "Can't connect to HTTPS URL because the SSL module is not available."
                )
        if option is Opt.HTTPHEADER:
            value = list(value)

        self._options[option] = value

    def getopt(self, option: Opt) -> Any:
        return self._options[option]

    def reset(self) -> None:
        """Restore every option to its default and clear the error state."""
        self._options = dict(_DEFAULTS)
        self._info = {}
        self.clear_error()

    def clear_error(self) -> None:
        self.errno = ErrorCode.OK
        self.error = ""

    def info(self) -> Dict[str, Any]:
        """Facts about the last transfer: effective url, response code, ..."""
        return dict(self._info)

    def close(self) -> None:
        if self._closed:
            return
        self._close_conn()
        self._closed = True
        log.debug("Closed transfer handle %#x", id(self))

    def _close_conn(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def perform(self) -> _TYPE_PERFORM_RESULT:
        if self._closed:
            raise HandleClosedError("Cannot perform a transfer on a closed handle")
        if not self._options[Opt.URL]:
            raise OptionRejected(Opt.URL, None, "no URL set")

        self.clear_error()
        self._info = {"redirect_count": 0, "response_code": 0}
        start = time.monotonic()
        body = bytearray()
        try:
            self._transfer(body)
        except _TransferError as e:
            self.errno = e.code
            self.error = e.message
            log.debug("Transfer failed (%d): %s", e.code, e.message)
            return False
        finally:
            self._close_conn()
            self._info["total_time"] = time.monotonic() - start

        if self._options[Opt.RETURNTRANSFER]:
            return bytes(body)
        return True

    def _transfer(self, body: bytearray) -> None:
        url = self._options[Opt.URL]
        method = self._method()
        payload = self._payload()
        redirects = 0

        while True:
            response = self._send(url, method, payload)
            self._info["effective_url"] = url
            self._info["response_code"] = response.status
            self._emit_headers(response)

            location = response.getheader("Location")
            if (
                self._options[Opt.FOLLOWLOCATION]
                and response.status in REDIRECT_STATUSES
                and location
            ):
                self._drain(response)
                max_redirs = self._options[Opt.MAXREDIRS]
                if max_redirs != -1 and redirects >= max_redirs:
                    raise _TransferError(
                        ErrorCode.TOO_MANY_REDIRECTS,
                        f"Maximum ({max_redirs}) redirects followed",
                    )
                redirects += 1
                self._info["redirect_count"] = redirects
                new_url = resolve_location(url, location)
                log.debug("Redirecting %s -> %s", url, new_url)
                url = new_url
                if response.status == 303 or (
                    response.status in (301, 302) and method == "POST"
                ):
                    method, payload = "GET", None
                elif payload is not None and hasattr(payload, "seek"):
                    payload.seek(0)
                self._close_conn()
                continue

            self._read_body(response, body)
            return

    def _method(self) -> str:
        custom = self._options[Opt.CUSTOMREQUEST]
        if custom:
            return custom.upper()
        if self._options[Opt.UPLOAD]:
            return "PUT"
        if self._options[Opt.POSTFIELDS] is not None:
            return "POST"
        return "GET"

    def _payload(self) -> Optional[Union[bytes, IO[bytes]]]:
        if self._options[Opt.UPLOAD]:
            return self._options[Opt.READDATA]
        fields = self._options[Opt.POSTFIELDS]
        if isinstance(fields, str):
            return fields.encode("utf-8")
        return fields

    def _request_headers(self, payload: Any) -> HTTPHeaderDict:
        headers = HTTPHeaderDict()
        if self._options[Opt.USERAGENT]:
            headers["User-Agent"] = self._options[Opt.USERAGENT]
        if self._options[Opt.ENCODING]:
            headers["Accept-Encoding"] = self._options[Opt.ENCODING]
        if self._options[Opt.REFERER]:
            headers["Referer"] = self._options[Opt.REFERER]
        if self._options[Opt.COOKIE]:
            headers["Cookie"] = self._options[Opt.COOKIE]
        if isinstance(payload, bytes):
            headers["Content-Length"] = str(len(payload))
        elif payload is not None and self._options[Opt.INFILESIZE] is not None:
            headers["Content-Length"] = str(self._options[Opt.INFILESIZE])

        # The configured body was dropped by a redirect.
        body_dropped = payload is None and (
            self._options[Opt.UPLOAD] or self._options[Opt.POSTFIELDS] is not None
        )
        custom = [
            (name.strip(), value.strip())
            for name, _, value in (
                line.partition(":") for line in self._options[Opt.HTTPHEADER]
            )
            if not (body_dropped and name.strip().lower() in _BODY_HEADERS)
        ]
        # Custom headers replace the generated ones of the same name.
        for name, _ in custom:
            headers.discard(name)
        for name, value in custom:
            headers.add(name, value)
        return headers

    def _send(
        self, url: str, method: str, payload: Any
    ) -> HTTPResponse:
        parsed = parse_url(url)
        scheme = parsed.scheme or "http"
        if scheme not in port_by_scheme:
            raise _TransferError(
                ErrorCode.UNSUPPORTED_PROTOCOL, f"Protocol {scheme!r} not supported"
            )
        if not parsed.host:
            raise _TransferError(ErrorCode.URL_MALFORMAT, f"No host in URL {url!r}")

        host = parsed.host.strip("[]")
        port = parsed.port or port_by_scheme[scheme]
        conn: HTTPConnection
        if scheme == "https":
            if ssl is None:
                raise _TransferError(
                    ErrorCode.UNSUPPORTED_PROTOCOL, "SSL module is not available"
                )
            conn = self.ConnectionSSLCls(
                host,
                port,
                timeout=self._options[Opt.CONNECTTIMEOUT],
                verify=self._options[Opt.SSL_VERIFYPEER],
            )
        else:
            conn = self.ConnectionCls(
                host, port, timeout=self._options[Opt.CONNECTTIMEOUT]
            )
        self._conn = conn

        headers = self._request_headers(payload)
        if parsed.auth and "authorization" not in headers:
            headers["Authorization"] = make_headers(basic_auth=parsed.auth)[
                "authorization"
            ]

        try:
            conn.connect()
        except socket.gaierror as e:
            raise _TransferError(
                ErrorCode.COULDNT_RESOLVE_HOST, f"Could not resolve host: {host} ({e})"
            ) from e
        except socket.timeout as e:
            raise _TransferError(
                ErrorCode.OPERATION_TIMEDOUT,
                f"Connection to {host} timed out. (connect timeout={conn.timeout})",
            ) from e
        except BaseSSLError as e:
            raise _TransferError(ErrorCode.SSL_CONNECT_ERROR, str(e)) from e
        except OSError as e:
            raise _TransferError(
                ErrorCode.COULDNT_CONNECT, f"Failed to connect to {host} port {port}: {e}"
            ) from e

        conn.set_read_timeout(self._options[Opt.TIMEOUT])
        try:
            conn.request(
                method,
                parsed.request_uri,
                body=payload,
                headers=dict(headers.itermerged()),
            )
        except socket.timeout as e:
            raise _TransferError(ErrorCode.OPERATION_TIMEDOUT, f"Send timed out: {e}") from e
        except http.client.InvalidURL as e:
            raise _TransferError(ErrorCode.URL_MALFORMAT, f"Malformed URL {url!r}: {e}") from e
        except OSError as e:
            raise _TransferError(ErrorCode.SEND_ERROR, f"Failed sending data: {e}") from e
        except (http.client.HTTPException, ValueError) as e:
            # Invalid method or header values, or an upload file that was closed.
            raise _TransferError(ErrorCode.SEND_ERROR, f"Failed sending data: {e}") from e

        try:
            return conn.getresponse()
        except socket.timeout as e:
            raise _TransferError(
                ErrorCode.OPERATION_TIMEDOUT,
                f"Read timed out. (read timeout={self._options[Opt.TIMEOUT]})",
            ) from e
        except http.client.HTTPException as e:
            raise _TransferError(ErrorCode.WEIRD_SERVER_REPLY, repr(e)) from e
        except OSError as e:
            raise _TransferError(ErrorCode.RECV_ERROR, f"Failure receiving data: {e}") from e

    def _emit_headers(self, response: HTTPResponse) -> None:
        callback = self._options[Opt.HEADERFUNCTION]
        if callback is None:
            return
        # Header lines go out byte for byte as received.
        lines: List[str] = [
            line.decode("iso-8859-1") for line in response.raw_header_lines
        ]
        for line in lines:
            consumed = callback(line)
            if consumed is not None and consumed != len(line):
                raise _TransferError(
                    ErrorCode.ABORTED_BY_CALLBACK,
                    "Failed writing header: the header function returned "
                    f"{consumed} for a line of {len(line)} bytes",
                )

    def _drain(self, response: HTTPResponse) -> None:
        try:
            response.read()
        except (OSError, http.client.HTTPException) as e:
            raise _TransferError(ErrorCode.RECV_ERROR, f"Failure receiving data: {e}") from e

    def _read_body(self, response: HTTPResponse, body: bytearray) -> None:
        writer = self._options[Opt.WRITEFUNCTION]
        buffering = self._options[Opt.RETURNTRANSFER]
        while True:
            try:
                chunk = response.read(self.blocksize)
            except socket.timeout as e:
                raise _TransferError(
                    ErrorCode.OPERATION_TIMEDOUT,
                    f"Read timed out. (read timeout={self._options[Opt.TIMEOUT]})",
                ) from e
            except (OSError, http.client.HTTPException) as e:
                raise _TransferError(
                    ErrorCode.RECV_ERROR, f"Failure receiving data: {e!r}"
                ) from e
            if not chunk:
                return
            if buffering:
                body.extend(chunk)
            elif writer is not None:
                try:
                    writer(chunk)
                except OSError as e:
                    raise _TransferError(
                        ErrorCode.WRITE_ERROR, f"Failed writing received data: {e}"
                    ) from e

