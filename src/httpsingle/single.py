import logging
from types import TracebackType
from typing import TYPE_CHECKING, Any, Callable, Optional, Type, Union

from .exceptions import (
    EngineUnavailable,
    HandleClosedError,
    HandleCreationFailed,
    TransferFailed,
)
from .handle import TransferHandle
from .options import Options
from .request import GetRequest, PostUrlencodedRequest, PutFileRequest, Request
from .response import Response
from .uri import URI
from .util.request import _TYPE_PAIRS

if TYPE_CHECKING:
    from typing_extensions import Literal

log = logging.getLogger(__name__)

_TYPE_HANDLE_FACTORY = Callable[[], TransferHandle]


class Single:
    """
    Runs one HTTP request through one engine handle.

    The instance owns the handle, the current :class:`~httpsingle.request.Request`,
    the :class:`~httpsingle.response.Response` being filled and the
    :class:`~httpsingle.options.Options` applied to the handle. The handle is
    released by :meth:`disconnect`, by leaving a ``with`` block or when the
    instance is garbage collected, whichever comes first.

    Usage::

        >>> response = Single.GET("http://example.com/", {"q": "x"})
        >>> response.status
        200

        >>> with Single(PostUrlencodedRequest("http://example.com/form")) as s:
        ...     s.request.add_post_var("a", 1)
        ...     response = s.exec()

    :param request:
        The request to run.

    :param handle_factory:
        Callable returning a fresh engine handle. Defaults to
        :class:`~httpsingle.handle.TransferHandle`.

    :param options_kw:
        Passed on to :class:`~httpsingle.options.Options`.
    """

    def __init__(
        self,
        request: Request,
        handle_factory: Optional[_TYPE_HANDLE_FACTORY] = None,
        **options_kw: Any,
    ) -> None:
        self._handle: Optional[TransferHandle] = None
        self._request_counter = 0
        self._is_prepared = False

        if handle_factory is None:
            handle_factory = TransferHandle
        if not callable(handle_factory) or not getattr(handle_factory, "available", True):
            raise EngineUnavailable(f"Transfer engine {handle_factory!r} is not available")

        try:
            handle = handle_factory()
        except EngineUnavailable:
            raise
        except Exception as e:
            raise HandleCreationFailed(f"Could not create an engine handle: {e}") from e
        if handle is None:
            raise HandleCreationFailed("The engine returned no handle")
        self._handle = handle

        try:
            if getattr(handle, "errno", 0):
                raise HandleCreationFailed(
                    f"New engine handle is in an error state: {handle.error}"
                )

            self._request = request
            self._uri = request.get_uri()
            self._response = Response(self._uri)

            self._options = Options(handle, **options_kw)
            self._options.set_basic_params()
            # set the response headers handler
            self._options.set_headers_handler(self._headers_handler)
        except BaseException:
            self.disconnect()
            raise

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self._request!r} requests={self._request_counter}>"

    def __enter__(self) -> "Single":
        return self

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[TracebackType],
    ) -> "Literal[False]":
        self.disconnect()
        # Return False to re-raise any potential exceptions
        return False

    def __del__(self) -> None:
        if getattr(self, "_handle", None) is not None:
            self.disconnect()

    @property
    def request(self) -> Request:
        return self._request

    @property
    def response(self) -> Response:
        return self._response

    @property
    def options(self) -> Options:
        return self._options

    @property
    def uri(self) -> URI:
        return self._uri

    @property
    def handle(self) -> Optional[TransferHandle]:
        return self._handle

    @property
    def request_counter(self) -> int:
        return self._request_counter

    @property
    def is_prepared(self) -> bool:
        return self._is_prepared

    def _headers_handler(self, line: Union[str, bytes]) -> int:
        # Goes through self so that redirect() can swap the response.
        return self._response.headers_handler(line)

    def redirect(self, new_uri: str) -> None:
        """Point at ``new_uri`` with a fresh GET request and an empty response."""
        self._uri.redirect(new_uri)
        if self._is_prepared:
            self._request.on_request_end()

        # create request and response objects
        self._request = GetRequest(self._uri)
        self._response = Response(self._uri)
        self._is_prepared = False
        log.debug("Redirected to %s", self._uri)

    def exec(self) -> Response:
        """Run the transfer and return the filled :class:`Response`."""
        handle = self._handle
        if handle is None:
            raise HandleClosedError("Cannot exec() after disconnect()")

        if not self._is_prepared:
            self._request.prepare(self._options)
            self._is_prepared = True

        # run the request
        self._request_counter += 1
        try:
            result = handle.perform()

            if handle.errno:
                raise TransferFailed(str(self._uri), handle.error, int(handle.errno))
            if (
                self._options.return_transfer()
                and not result
                and not self._response.headers_len
            ):
                raise TransferFailed(str(self._uri), handle.error or None)

            # keep the response data if required
            if self._options.return_transfer() and isinstance(result, bytes):
                self._response.body = result
        finally:
            # The next exec() prepares the request again, whatever happened here.
            self._request.on_request_end()
            self._is_prepared = False

        log.debug(
            '"%s %s" %s %s',
            self._request.method,
            handle.info().get("effective_url", self._uri),
            self._response.status,
            len(self._response.raw_body),
        )
        return self._response

    def disconnect(self) -> None:
        """Release the engine handle. Calling it again does nothing."""
        handle, self._handle = self._handle, None
        if handle is not None:
            handle.close()

    @classmethod
    def GET(cls, uri: Union[str, URI], params: Optional[_TYPE_PAIRS] = None) -> Response:
        """
        A shortcut to make a GET request.

        >>> print(Single.GET("http://example.com/", {"page": 2}))
        """
        request = GetRequest(uri, params)
        with cls(request) as single:
            return single.exec()

    @classmethod
    def POST(cls, uri: Union[str, URI], params: Optional[_TYPE_PAIRS]) -> Response:
        """
        A shortcut to make a urlencoded POST request.

        >>> print(Single.POST("http://example.com/", {"a": 1, "b": 2}))
        """
        request = PostUrlencodedRequest(uri, params)
        with cls(request) as single:
            return single.exec()

    @classmethod
    def PUT(cls, uri: Union[str, URI], file_path: str) -> Response:
        """A shortcut to upload ``file_path`` with a PUT request."""
        request = PutFileRequest(uri, file_path)
        with cls(request) as single:
            return single.exec()

