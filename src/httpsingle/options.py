import logging
import warnings
from typing import IO, Any, Dict, Iterator, Mapping, Optional

from .exceptions import InsecureRequestWarning, OptionRejected
from .handle import _TYPE_HEADER_FUNCTION, Opt, TransferHandle
from .util.request import ACCEPT_ENCODING

log = logging.getLogger(__name__)


class Options(Mapping[Opt, Any]):
    """
    The engine configuration of one :class:`~httpsingle.single.Single`.

    Every value set here is applied to the engine handle straight away, so a
    value the engine rejects raises :class:`~httpsingle.exceptions.OptionRejected`
    at the call site. The instance also keeps its own copy of what it set,
    readable like a mapping:

    >>> options = Options(TransferHandle())
    >>> options.set_basic_params()
    >>> options[Opt.FOLLOWLOCATION]
    False

    Defaults are class attributes; subclass or pass keyword arguments to change
    them for every request made with the instance.
    """

    #: Seconds allowed to establish the connection.
    DEFAULT_CONNECT_TIMEOUT: Optional[float] = 10.0

    #: Seconds allowed for each socket read and write once connected.
    DEFAULT_TIMEOUT: Optional[float] = 30.0

    #: Redirects followed when ``FOLLOWLOCATION`` is on; ``-1`` is unlimited.
    DEFAULT_MAX_REDIRS: int = 10

    DEFAULT_USER_AGENT: str = "python-httpsingle"

    #: Value sent as ``Accept-Encoding``; ``None`` sends nothing.
    DEFAULT_ENCODING: Optional[str] = ACCEPT_ENCODING

    def __init__(
        self,
        handle: TransferHandle,
        connect_timeout: Optional[float] = None,
        timeout: Optional[float] = None,
        user_agent: Optional[str] = None,
    ) -> None:
        self.handle = handle
        self._values: Dict[Opt, Any] = {}
        self._connect_timeout = (
            connect_timeout
            if connect_timeout is not None
            else self.DEFAULT_CONNECT_TIMEOUT
        )
        self._timeout = timeout if timeout is not None else self.DEFAULT_TIMEOUT
        self._user_agent = user_agent or self.DEFAULT_USER_AGENT

    def __repr__(self) -> str:
        values = ", ".join(f"{opt.name}={val!r}" for opt, val in self._values.items())
        return f"{type(self).__name__}({values})"

    def __getitem__(self, option: Opt) -> Any:
        return self._values[option]

    def __iter__(self) -> Iterator[Opt]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def set(self, option: Opt, value: Any) -> None:
        """Apply ``option`` to the handle and remember it."""
        try:
            self.handle.setopt(option, value)
        except OptionRejected:
            log.debug("Engine rejected %s=%r", option, value)
            raise
        self._values[option] = value

    def set_many(self, options: Mapping[Opt, Any]) -> None:
        for option, value in options.items():
            self.set(option, value)

    def set_basic_params(self) -> None:
        """Timeouts, return-transfer mode and the other per-handle defaults."""
        self.set_many(
            {
                Opt.CONNECTTIMEOUT: self._connect_timeout,
                Opt.TIMEOUT: self._timeout,
                Opt.RETURNTRANSFER: True,
                Opt.FOLLOWLOCATION: False,
                Opt.MAXREDIRS: self.DEFAULT_MAX_REDIRS,
                Opt.USERAGENT: self._user_agent,
                Opt.ENCODING: self.DEFAULT_ENCODING,
            }
        )

    def set_headers_handler(self, callback: _TYPE_HEADER_FUNCTION) -> None:
        """``callback`` receives every response header line during a transfer."""
        self.set(Opt.HEADERFUNCTION, callback)

    def return_transfer(self) -> bool:
        return bool(self._values.get(Opt.RETURNTRANSFER, False))

    def set_timeout(
        self, total: Optional[float] = None, connect: Optional[float] = None
    ) -> None:
        if connect is not None:
            self.set(Opt.CONNECTTIMEOUT, connect)
        if total is not None:
            self.set(Opt.TIMEOUT, total)

    def follow_location(self, enabled: bool = True, max_redirs: Optional[int] = None) -> None:
        self.set(Opt.FOLLOWLOCATION, enabled)
        if max_redirs is not None:
            self.set(Opt.MAXREDIRS, max_redirs)

    def set_output(self, fileobj: IO[bytes]) -> None:
        """Stream the response body into ``fileobj`` instead of buffering it."""
        if not hasattr(fileobj, "write"):
            raise OptionRejected(Opt.WRITEFUNCTION, fileobj, "expected a writable file")
        self.set(Opt.WRITEFUNCTION, fileobj.write)
        self.set(Opt.RETURNTRANSFER, False)

    def verify_peer(self, enabled: bool = True) -> None:
        if not enabled:
            warnings.warn(
                "TLS certificate verification is disabled. Adding certificate "
                "verification is strongly advised.",
                InsecureRequestWarning,
                stacklevel=2,
            )
        self.set(Opt.SSL_VERIFYPEER, enabled)
