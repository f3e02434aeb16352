import logging
import re
import socket
from http.client import HTTPConnection as _HTTPConnection
from http.client import HTTPResponse as _HTTPResponse
from typing import TYPE_CHECKING, Any, BinaryIO, List, Optional, Tuple, Union

try:  # Compiled with SSL?
    import ssl

    BaseSSLError = ssl.SSLError
except (ImportError, AttributeError):  # Platform-specific: No SSL.
    ssl = None  # type: ignore[assignment]

    class BaseSSLError(BaseException):  # type: ignore[no-redef]
        pass


if TYPE_CHECKING:
    from ssl import SSLContext


log = logging.getLogger(__name__)

port_by_scheme = {"http": 80, "https": 443}

_CONTAINS_CONTROL_CHAR_RE = re.compile(r"[^-!#$%&'*+.^_`|~0-9a-zA-Z]")

_TYPE_SOCKET_OPTIONS = List[Tuple[int, int, Union[int, bytes]]]
_TYPE_TIMEOUT = Optional[float]


def resolve_timeout(timeout: _TYPE_TIMEOUT) -> object:
    """``None`` means "use the socket module's global default"."""
    if timeout is None:
        return socket._GLOBAL_DEFAULT_TIMEOUT  # type: ignore[attr-defined]
    return timeout


class _LineRecorder:
    """Wraps the response file and keeps every line read through ``readline``."""

    def __init__(self, fp: BinaryIO) -> None:
        self.fp = fp
        self.lines: List[bytes] = []

    def readline(self, limit: int = -1) -> bytes:
        line = self.fp.readline(limit)
        self.lines.append(line)
        return line

    def __getattr__(self, name: str) -> Any:
        return getattr(self.fp, name)


class HTTPResponse(_HTTPResponse):
    """
    :class:`http.client.HTTPResponse` that keeps the status and header lines
    exactly as they came off the wire, in :attr:`raw_header_lines`.
    """

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.raw_header_lines: List[bytes] = []

    def begin(self) -> None:
        if self.headers is not None:
            # Already began.
            return

        recorder = _LineRecorder(self.fp)  # type: ignore[arg-type]
        self.fp = recorder  # type: ignore[assignment]
        try:
            super().begin()
        finally:
            # begin() may have closed and dropped the file already.
            if self.fp is recorder:
                self.fp = recorder.fp  # type: ignore[assignment]
            self.raw_header_lines = recorder.lines


class HTTPConnection(_HTTPConnection):
    """
    Based on :class:`http.client.HTTPConnection`, used by
    :class:`~httpsingle.handle.TransferHandle` to move the bytes of one
    transfer.

    Additional keyword parameters are used to configure attributes of the connection.
    Accepted parameters include:

    - ``socket_options``: Set specific options on the underlying socket. If not specified, then
      defaults are loaded from ``HTTPConnection.default_socket_options`` which includes disabling
      Nagle's algorithm (sets TCP_NODELAY to 1).
    - ``blocksize``: size of the blocks used when sending a file-like body.
    """

    default_port: int = port_by_scheme["http"]

    response_class = HTTPResponse

    #: Disable Nagle's algorithm by default.
    #: ``[(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)]``
    default_socket_options: _TYPE_SOCKET_OPTIONS = [
        (socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
    ]

    socket_options: Optional[_TYPE_SOCKET_OPTIONS]

    def __init__(
        self,
        host: str,
        port: Optional[int] = None,
        timeout: _TYPE_TIMEOUT = None,
        blocksize: int = 8192,
        socket_options: Optional[_TYPE_SOCKET_OPTIONS] = default_socket_options,
    ) -> None:
        self.socket_options = socket_options

        super().__init__(
            host=host,
            port=port,
            timeout=resolve_timeout(timeout),  # type: ignore[arg-type]
            blocksize=blocksize,
        )

    @property  # type: ignore[override]
    def host(self) -> str:  # type: ignore[override]
        """
        Getter method to remove any trailing dots that indicate the hostname is an FQDN.

        The hostname with trailing dot is kept for DNS resolution only, see
        ``_dns_host``.
        """
        return self._dns_host.rstrip(".")

    @host.setter
    def host(self, value: str) -> None:
        self._dns_host = value

    def _new_conn(self) -> socket.socket:
        """Establish a socket connection and set nodelay settings on it.

        :return: New socket connection.
        """
        sock = socket.create_connection((self._dns_host, self.port), self.timeout)
        for opt in self.socket_options or ():
            sock.setsockopt(*opt)
        return sock

    def connect(self) -> None:
        self.sock = self._new_conn()

    def set_read_timeout(self, timeout: _TYPE_TIMEOUT) -> None:
        """Switch the established socket over to the read timeout."""
        if self.sock is not None:
            self.sock.settimeout(timeout)

    def putrequest(  # type: ignore[override]
        self,
        method: str,
        url: str,
        skip_host: bool = False,
        skip_accept_encoding: bool = False,
    ) -> None:
        """"""
        match = _CONTAINS_CONTROL_CHAR_RE.search(method)
        if match:
            raise ValueError(
                f"Method cannot contain non-token characters {method!r} (found at least {match.group()!r})"
            )

        return super().putrequest(
            method, url, skip_host=skip_host, skip_accept_encoding=skip_accept_encoding
        )


class HTTPSConnection(HTTPConnection):
    """
    Many of the parameters to this constructor are passed to the underlying SSL
    socket by means of :meth:`ssl.SSLContext.wrap_socket`.
    """

    default_port = port_by_scheme["https"]

    def __init__(
        self,
        host: str,
        port: Optional[int] = None,
        timeout: _TYPE_TIMEOUT = None,
        blocksize: int = 8192,
        socket_options: Optional[
            _TYPE_SOCKET_OPTIONS
        ] = HTTPConnection.default_socket_options,
        ssl_context: Optional["SSLContext"] = None,
        verify: bool = True,
    ) -> None:
        super().__init__(
            host,
            port=port,
            timeout=timeout,
            blocksize=blocksize,
            socket_options=socket_options,
        )
        self.ssl_context = ssl_context or create_ssl_context(verify)

    def connect(self) -> None:
        sock = self._new_conn()
        self.sock = self.ssl_context.wrap_socket(sock, server_hostname=self.host)


def create_ssl_context(verify: bool = True) -> "SSLContext":
    """Build the default client context, optionally without verification."""
    if ssl is None:
        raise ImportError("Can't create an SSL context without the ssl module")
    context = ssl.create_default_context()
    if not verify:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context
