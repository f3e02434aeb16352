import logging
from typing import List

from .exceptions import LocationParseError
from .util.url import Url, parse_url, resolve_location

log = logging.getLogger(__name__)


class URI:
    """
    The address a request goes to.

    Addresses without a scheme are taken to be ``http``. A redirect replaces
    the address in place; the addresses it replaced are kept in
    :attr:`history`.
    """

    def __init__(self, address: str) -> None:
        self._parsed = self._normalize(address)
        self.history: List[str] = []

    @staticmethod
    def _normalize(address: str) -> Url:
        if not isinstance(address, str):
            raise LocationParseError(repr(address))
        address = address.strip()
        parsed = parse_url(address)
        if parsed.host is None:
            raise LocationParseError(address)
        if parsed.scheme is None:
            parsed = parsed._replace(scheme="http")
        return parsed

    def __str__(self) -> str:
        return self._parsed.url

    def __repr__(self) -> str:
        return f"{type(self).__name__}({str(self)!r})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, URI):
            return str(self) == str(other)
        if isinstance(other, str):
            return str(self) == other
        return NotImplemented

    def __hash__(self) -> int:
        return hash(str(self))

    @property
    def address(self) -> str:
        return str(self)

    @property
    def parsed(self) -> Url:
        return self._parsed

    @property
    def scheme(self) -> str:
        return self._parsed.scheme or "http"

    @property
    def host(self) -> str:
        return self._parsed.host or ""

    def redirect(self, new_address: str) -> None:
        """Point at ``new_address``, resolved against the current address.

        Any response obtained for the previous address is stale from here on.
        """
        resolved = resolve_location(str(self), new_address)
        parsed = self._normalize(resolved)
        log.debug("Redirect %s -> %s", self, parsed.url)
        self.history.append(str(self))
        self._parsed = parsed
