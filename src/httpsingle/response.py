import json as _json
import logging
import re
import zlib
from http.cookies import CookieError, SimpleCookie
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple, Type, Union

try:
    try:
        import brotlicffi as brotli  # type: ignore[import]
    except ImportError:
        import brotli  # type: ignore[import]
except ImportError:
    brotli = None

from ._collections import HTTPHeaderDict
from .exceptions import DecodeError, HeaderParsingError

if TYPE_CHECKING:
    from typing_extensions import Literal

    from .uri import URI

log = logging.getLogger(__name__)

_CHARSET_RE = re.compile(r"charset\s*=\s*[\"']?([\w.:-]+)", re.IGNORECASE)


class ContentDecoder:
    def decompress(self, data: bytes) -> bytes:
        raise NotImplementedError()

    def flush(self) -> bytes:
        raise NotImplementedError()


class DeflateDecoder(ContentDecoder):
    def __init__(self) -> None:
        self._first_try = True
        self._data = b""
        self._obj = zlib.decompressobj()

    def decompress(self, data: bytes) -> bytes:
        if not data:
            return data

        if not self._first_try:
            return self._obj.decompress(data)

        self._data += data
        try:
            decompressed = self._obj.decompress(data)
            if decompressed:
                self._first_try = False
                self._data = None  # type: ignore[assignment]
            return decompressed
        except zlib.error:
            # Some servers send raw deflate data without the zlib wrapper.
            self._first_try = False
            self._obj = zlib.decompressobj(-zlib.MAX_WBITS)
            try:
                return self.decompress(self._data)
            finally:
                self._data = None  # type: ignore[assignment]

    def flush(self) -> bytes:
        return self._obj.flush()


class GzipDecoderState:

    FIRST_MEMBER = 0
    OTHER_MEMBERS = 1
    SWALLOW_DATA = 2


class GzipDecoder(ContentDecoder):
    def __init__(self) -> None:
        self._obj = zlib.decompressobj(16 + zlib.MAX_WBITS)
        self._state = GzipDecoderState.FIRST_MEMBER

    def decompress(self, data: bytes) -> bytes:
        ret = bytearray()
        if self._state == GzipDecoderState.SWALLOW_DATA or not data:
            return bytes(ret)
        while True:
            try:
                ret += self._obj.decompress(data)
            except zlib.error:
                previous_state = self._state
                # Ignore data after the first error
                self._state = GzipDecoderState.SWALLOW_DATA
                if previous_state == GzipDecoderState.OTHER_MEMBERS:
                    # Allow trailing garbage acceptable in other gzip clients
                    return bytes(ret)
                raise
            data = self._obj.unused_data
            if not data:
                return bytes(ret)
            self._state = GzipDecoderState.OTHER_MEMBERS
            self._obj = zlib.decompressobj(16 + zlib.MAX_WBITS)

    def flush(self) -> bytes:
        return self._obj.flush()


if brotli is not None:

    class BrotliDecoder(ContentDecoder):
        # Supports both 'brotlipy' and 'Brotli' packages
        # since they share an import name. The top branches
        # are for 'brotlipy' and bottom branches for 'Brotli'
        def __init__(self) -> None:
            self._obj = brotli.Decompressor()
            if hasattr(self._obj, "decompress"):
                setattr(self, "decompress", self._obj.decompress)
            else:
                setattr(self, "decompress", self._obj.process)

        def flush(self) -> bytes:
            if hasattr(self._obj, "flush"):
                return self._obj.flush()  # type: ignore[no-any-return]
            return b""


class MultiDecoder(ContentDecoder):
    """
    From RFC7231:
        If one or more encodings have been applied to a representation, the
        sender that applied the encodings MUST generate a Content-Encoding
        header field that lists the content codings in the order in which
        they were applied.
    """

    def __init__(self, modes: str) -> None:
        self._decoders = [_get_decoder(m.strip()) for m in modes.split(",")]

    def flush(self) -> bytes:
        return self._decoders[0].flush()

    def decompress(self, data: bytes) -> bytes:
        for d in reversed(self._decoders):
            data = d.decompress(data)
        return data


def _get_decoder(mode: str) -> ContentDecoder:
    if "," in mode:
        return MultiDecoder(mode)

    if mode == "gzip":
        return GzipDecoder()

    if brotli is not None and mode == "br":
        return BrotliDecoder()

    return DeflateDecoder()


class Response:
    """
    What came back from one transfer.

    Headers arrive line by line through :meth:`headers_handler`, which the
    engine calls during the transfer; :attr:`headers_len` counts the bytes
    seen so far. The orchestrator sets :attr:`body` once the transfer is
    over, and the body is decoded according to ``Content-Encoding`` when
    ``decode_content`` is true.

    ``str(response)`` is the body as text.
    """

    CONTENT_DECODERS = ["gzip", "deflate"]
    if brotli is not None:
        CONTENT_DECODERS += ["br"]
    REDIRECT_STATUSES = [301, 302, 303, 307, 308]

    DECODER_ERROR_CLASSES: Tuple[Type[Exception], ...] = (IOError, zlib.error)
    if brotli is not None:
        DECODER_ERROR_CLASSES += (brotli.error,)

    def __init__(
        self,
        uri: Optional["URI"] = None,
        decode_content: bool = True,
    ) -> None:
        self.uri = uri
        self.decode_content = decode_content

        self.status = 0
        self.reason = ""
        self.version = ""
        self.headers = HTTPHeaderDict()
        self.headers_len = 0
        #: Status lines seen during the transfer, one per followed redirect.
        self.status_lines: List[str] = []

        self._last_header: Optional[str] = None
        self._raw_body: Optional[bytes] = None
        self._body: Optional[bytes] = None

    def __repr__(self) -> str:
        return f"<{type(self).__name__} [{self.status}] {self.uri}>"

    def __str__(self) -> str:
        return self.text

    def headers_handler(self, line: Union[str, bytes]) -> int:
        """Take one header line from the engine; returns the bytes consumed."""
        if isinstance(line, bytes):
            line = line.decode("iso-8859-1")
        self.headers_len += len(line)
        try:
            self._parse_header_line(line)
        except HeaderParsingError as hpe:
            log.warning("Failed to parse headers (url=%s): %s", self.uri, hpe)
        return len(line)

    def _parse_header_line(self, line: str) -> None:
        stripped = line.rstrip("\r\n")
        if not stripped:
            # End of one header block.
            self._last_header = None
            return

        if stripped.startswith("HTTP/"):
            self._parse_status_line(stripped)
            return

        if stripped.startswith((" ", "\t")):
            # obs-fold, RFC 7230 section 3.2.4
            if self._last_header is None:
                raise HeaderParsingError(line, "header continuation with no previous header")
            values = self.headers.getlist(self._last_header)
            values[-1] = f"{values[-1]} {stripped.strip()}"
            del self.headers[self._last_header]
            for value in values:
                self.headers.add(self._last_header, value)
            return

        name, sep, value = stripped.partition(":")
        name = name.strip()
        if not sep or not name:
            raise HeaderParsingError(line)
        self.headers.add(name, value.strip())
        self._last_header = name

    def _parse_status_line(self, line: str) -> None:
        parts = line.split(None, 2)
        if len(parts) < 2:
            raise HeaderParsingError(line, "malformed status line")
        try:
            status = int(parts[1])
        except ValueError:
            raise HeaderParsingError(line, "malformed status line") from None

        # A new status line (interim 1xx or a followed redirect) starts over.
        self.version = parts[0]
        self.status = status
        self.reason = parts[2] if len(parts) > 2 else ""
        self.headers = HTTPHeaderDict()
        self._last_header = None
        self.status_lines.append(line)

    @property
    def body(self) -> bytes:
        if self._body is None:
            return b""
        return self._body

    @body.setter
    def body(self, value: bytes) -> None:
        if isinstance(value, str):
            value = value.encode("utf-8")
        self._raw_body = value
        self._body = self._decode(value) if self.decode_content else value

    #: Alias of :attr:`body`.
    data = body

    @property
    def raw_body(self) -> bytes:
        """The body exactly as received, before content decoding."""
        return self._raw_body or b""

    @property
    def encoding(self) -> Optional[str]:
        match = _CHARSET_RE.search(self.headers.get("content-type", ""))
        if match:
            return match.group(1)
        return None

    @property
    def text(self) -> str:
        return self.body.decode(self.encoding or "utf-8", errors="replace")

    def json(self) -> Any:
        """
        Parses the body of the HTTP response as JSON.

        This method can raise either `UnicodeDecodeError` or `json.JSONDecodeError`.
        """
        data = self.body.decode(self.encoding or "utf-8")
        return _json.loads(data)

    @property
    def cookies(self) -> Dict[str, str]:
        """Name to value of every cookie set by ``Set-Cookie`` headers."""
        jar: SimpleCookie = SimpleCookie()
        for header in self.headers.getlist("set-cookie"):
            try:
                jar.load(header)
            except CookieError:
                log.warning("Ignoring malformed Set-Cookie header: %r", header)
        return {name: morsel.value for name, morsel in jar.items()}

    @property
    def is_redirect(self) -> bool:
        return self.status in self.REDIRECT_STATUSES

    def get_redirect_location(self) -> Union[Optional[str], "Literal[False]"]:
        """
        Should we redirect and where to?

        :returns: Truthy redirect location string if we got a redirect status
            code and valid location. ``None`` if redirect status and no
            location. ``False`` if not a redirect status code.
        """
        if self.status in self.REDIRECT_STATUSES:
            return self.headers.get("location")
        return False

    def _get_decoder(self) -> Optional[ContentDecoder]:
        # Note: content-encoding value should be case-insensitive, per RFC 7230
        # Section 3.2
        content_encoding = self.headers.get("content-encoding", "").lower()
        if content_encoding in self.CONTENT_DECODERS:
            return _get_decoder(content_encoding)
        if "," in content_encoding:
            encodings = [
                e.strip()
                for e in content_encoding.split(",")
                if e.strip() in self.CONTENT_DECODERS
            ]
            if encodings:
                return _get_decoder(content_encoding)
        return None

    def _decode(self, data: bytes) -> bytes:
        decoder = self._get_decoder()
        if decoder is None or not data:
            return data
        try:
            return decoder.decompress(data) + decoder.decompress(b"") + decoder.flush()
        except self.DECODER_ERROR_CLASSES as e:
            content_encoding = self.headers.get("content-encoding", "").lower()
            raise DecodeError(
                "Received response with content-encoding: %s, but "
                "failed to decode it." % content_encoding,
                e,
            ) from e
