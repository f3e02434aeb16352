import logging
import os
from abc import ABC, abstractmethod
from http.cookies import SimpleCookie
from typing import IO, Any, List, Optional, Tuple, Union

from ._collections import HTTPHeaderDict
from .exceptions import RequestBodyError, RequestPreparedError
from .handle import Opt
from .options import Options
from .uri import URI
from .util.request import _TYPE_PAIRS, append_query, encode_pairs, iter_pairs, make_headers

__all__ = [
    "Request",
    "GetRequest",
    "PostUrlencodedRequest",
    "PutFileRequest",
]

log = logging.getLogger(__name__)

_TYPE_URI = Union[str, URI]


class Request(ABC):
    """
    Base class of the request kinds.

    A request knows its :class:`~httpsingle.uri.URI` and turns its own fields
    into engine options in :meth:`prepare`. Once prepared it refuses further
    changes. :meth:`on_request_end` runs after every transfer, successful or
    not, to release whatever the request holds.
    """

    method: str = "GET"

    def __init__(self, uri: _TYPE_URI) -> None:
        self.uri = uri if isinstance(uri, URI) else URI(uri)
        self.headers = HTTPHeaderDict()
        self.cookies: List[Tuple[str, str]] = []
        self._prepared = False

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.method} {self.uri}>"

    @property
    def is_prepared(self) -> bool:
        return self._prepared

    def _assert_mutable(self) -> None:
        if self._prepared:
            raise RequestPreparedError(f"{self!r} was already prepared")

    def get_uri(self) -> URI:
        return self.uri

    def add_header(self, name: str, value: str) -> None:
        self._assert_mutable()
        self.headers.add(name, value)

    def add_cookie_var(self, name: str, value: Any) -> None:
        self._assert_mutable()
        self.cookies.append((name, str(value)))

    def set_user_agent(self, user_agent: str) -> None:
        self._assert_mutable()
        self.headers["User-Agent"] = user_agent

    def set_referer(self, referer: str) -> None:
        self._assert_mutable()
        self.headers["Referer"] = referer

    def set_basic_auth(self, username: str, password: str) -> None:
        self._assert_mutable()
        auth = make_headers(basic_auth=f"{username}:{password}")
        self.headers["Authorization"] = auth["authorization"]

    def _cookie_header(self) -> Optional[str]:
        if not self.cookies:
            return None
        jar: SimpleCookie = SimpleCookie()
        parts = []
        for name, value in self.cookies:
            jar[name] = value
            parts.append(jar[name].OutputString())
        return "; ".join(parts)

    def prepare(self, options: Options) -> None:
        """Write this request's method, headers and body into ``options``."""
        options.set(Opt.URL, self.prepared_url())
        options.set(Opt.CUSTOMREQUEST, self.method)
        options.set(Opt.HTTPHEADER, self.headers.as_lines())
        options.set(Opt.COOKIE, self._cookie_header())
        self.prepare_body(options)
        self._prepared = True
        log.debug("Prepared %r", self)

    def prepared_url(self) -> str:
        return str(self.uri)

    @abstractmethod
    def prepare_body(self, options: Options) -> None:
        raise NotImplementedError()

    def on_request_end(self) -> None:
        pass


class GetRequest(Request):
    """A ``GET``; variables added with :meth:`add_get_var` go in the query."""

    method = "GET"

    def __init__(self, uri: _TYPE_URI, params: Optional[_TYPE_PAIRS] = None) -> None:
        super().__init__(uri)
        self.get_vars: List[Tuple[str, Any]] = list(iter_pairs(params))

    def add_get_var(self, name: str, value: Any) -> None:
        self._assert_mutable()
        self.get_vars.append((name, value))

    def prepared_url(self) -> str:
        return append_query(str(self.uri), encode_pairs(self.get_vars))

    def prepare_body(self, options: Options) -> None:
        options.set(Opt.UPLOAD, False)
        options.set(Opt.POSTFIELDS, None)


class PostUrlencodedRequest(Request):
    """A ``POST`` whose body is ``application/x-www-form-urlencoded``."""

    method = "POST"

    content_type = "application/x-www-form-urlencoded"

    def __init__(self, uri: _TYPE_URI, params: Optional[_TYPE_PAIRS] = None) -> None:
        super().__init__(uri)
        self.post_vars: List[Tuple[str, Any]] = list(iter_pairs(params))

    def add_post_var(self, name: str, value: Any) -> None:
        self._assert_mutable()
        self.post_vars.append((name, value))

    @property
    def body(self) -> str:
        return encode_pairs(self.post_vars)

    def prepare_body(self, options: Options) -> None:
        if "content-type" not in self.headers:
            options.set(
                Opt.HTTPHEADER,
                options[Opt.HTTPHEADER] + [f"Content-Type: {self.content_type}"],
            )
        options.set(Opt.UPLOAD, False)
        options.set(Opt.POSTFIELDS, self.body)


class PutFileRequest(Request):
    """
    A ``PUT`` streaming a local file as the body.

    The file is opened by :meth:`prepare` and closed by :meth:`on_request_end`.
    """

    method = "PUT"

    def __init__(self, uri: _TYPE_URI, file_path: Union[str, "os.PathLike[str]"]) -> None:
        super().__init__(uri)
        self.file_path = os.fspath(file_path)
        self._fp: Optional[IO[bytes]] = None

    def prepare_body(self, options: Options) -> None:
        try:
            self._fp = open(self.file_path, "rb")
            size = os.fstat(self._fp.fileno()).st_size
        except OSError as e:
            self.on_request_end()
            raise RequestBodyError(f"Cannot open {self.file_path!r} for upload: {e}") from e

        options.set(Opt.POSTFIELDS, None)
        options.set(Opt.UPLOAD, True)
        options.set(Opt.READDATA, self._fp)
        options.set(Opt.INFILESIZE, size)

    def on_request_end(self) -> None:
        if self._fp is not None:
            self._fp.close()
            self._fp = None
