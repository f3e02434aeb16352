"""
Single HTTP requests (GET, urlencoded POST, file PUT) over a curl-style transfer handle
"""

# Set default logging handler to avoid "No handler found" warnings.
import logging
import warnings
from logging import NullHandler
from typing import Optional, TextIO, Type

from . import exceptions
from ._collections import HTTPHeaderDict
from ._version import __version__
from .handle import ErrorCode, Opt, TransferHandle
from .options import Options
from .request import GetRequest, PostUrlencodedRequest, PutFileRequest, Request
from .response import Response
from .single import Single
from .uri import URI
from .util.request import _TYPE_PAIRS, make_headers

__author__ = "httpsingle contributors"
__license__ = "MIT"
__version__ = __version__

__all__ = (
    "ErrorCode",
    "GET",
    "GetRequest",
    "HTTPHeaderDict",
    "Opt",
    "Options",
    "POST",
    "PUT",
    "PostUrlencodedRequest",
    "PutFileRequest",
    "Request",
    "Response",
    "Single",
    "TransferHandle",
    "URI",
    "add_stderr_logger",
    "disable_warnings",
    "make_headers",
)

logging.getLogger(__name__).addHandler(NullHandler())


def add_stderr_logger(level: int = logging.DEBUG) -> "logging.StreamHandler[TextIO]":
    """
    Helper for quickly adding a StreamHandler to the logger. Useful for
    debugging.

    Returns the handler after adding it.
    """
    # This method needs to be in this __init__.py to get the __name__ correct
    # even if httpsingle is vendored within another package.
    logger = logging.getLogger(__name__)
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(level)
    logger.debug("Added a stderr logging handler to logger: %s", __name__)
    return handler


# ... Clean up.
del NullHandler


# All warning filters *must* be appended unless you're really certain that they
# shouldn't be: otherwise, it's very hard for users to use most Python
# mechanisms to silence them.
# SecurityWarning's always go off by default.
warnings.simplefilter("always", exceptions.SecurityWarning, append=True)


def disable_warnings(category: Type[Warning] = exceptions.HTTPWarning) -> None:
    """
    Helper for quickly disabling all httpsingle warnings.
    """
    warnings.simplefilter("ignore", category)


def GET(uri: str, params: Optional[_TYPE_PAIRS] = None) -> Response:
    """Module-level shortcut for :meth:`Single.GET`."""
    return Single.GET(uri, params)


def POST(uri: str, params: Optional[_TYPE_PAIRS]) -> Response:
    """Module-level shortcut for :meth:`Single.POST`."""
    return Single.POST(uri, params)


def PUT(uri: str, file_path: str) -> Response:
    """Module-level shortcut for :meth:`Single.PUT`."""
    return Single.PUT(uri, file_path)
