from base64 import b64encode
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union
from urllib.parse import quote_plus

_TYPE_PAIRS = Union[Mapping[str, Any], Iterable[Tuple[str, Any]]]

ACCEPT_ENCODING = "gzip,deflate"
try:
    try:
        import brotlicffi as _unused_module_brotli  # type: ignore[import] # noqa: F401
    except ImportError:
        import brotli as _unused_module_brotli  # type: ignore[import] # noqa: F401
except ImportError:
    pass
else:
    ACCEPT_ENCODING += ",br"


def make_headers(
    keep_alive: Optional[bool] = None,
    accept_encoding: Optional[Union[bool, List[str], str]] = None,
    user_agent: Optional[str] = None,
    basic_auth: Optional[str] = None,
    disable_cache: Optional[bool] = None,
) -> Dict[str, str]:
    """
    Shortcuts for generating request headers.

    :param keep_alive:
        If ``True``, adds 'connection: keep-alive' header.

    :param accept_encoding:
        Can be a boolean, list, or string.
        ``True`` translates to 'gzip,deflate'.  If either the ``brotli`` or
        ``brotlicffi`` package is installed 'gzip,deflate,br' is used instead.
        List will get joined by comma.
        String will be used as provided.

    :param user_agent:
        String representing the user-agent you want, such as
        "python-httpsingle/1.0"

    :param basic_auth:
        Colon-separated username:password string for 'authorization: basic ...'
        auth header.

    :param disable_cache:
        If ``True``, adds 'cache-control: no-cache' header.

    Example::

        >>> make_headers(keep_alive=True, user_agent="Batman/1.0")
        {'user-agent': 'Batman/1.0', 'connection': 'keep-alive'}
        >>> make_headers(accept_encoding=True)
        {'accept-encoding': 'gzip,deflate'}
    """
    headers: Dict[str, str] = {}
    if accept_encoding:
        if isinstance(accept_encoding, str):
            pass
        elif isinstance(accept_encoding, list):
            accept_encoding = ",".join(accept_encoding)
        else:
            accept_encoding = ACCEPT_ENCODING
        headers["accept-encoding"] = accept_encoding

    if user_agent:
        headers["user-agent"] = user_agent

    if keep_alive:
        headers["connection"] = "keep-alive"

    if basic_auth:
        headers[
            "authorization"
        ] = f"Basic {b64encode(basic_auth.encode('latin-1')).decode()}"

    if disable_cache:
        headers["cache-control"] = "no-cache"

    return headers


def _to_field(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    if isinstance(value, bool):
        return "1" if value else "0"
    return str(value)


def iter_pairs(pairs: Optional[_TYPE_PAIRS]) -> Iterable[Tuple[str, Any]]:
    """
    Iterate over key-value pairs.

    Supports mappings and sequences of ``(key, value)`` tuples; insertion
    order is kept and repeated keys are allowed in the sequence form.
    """
    if not pairs:
        return ()
    if isinstance(pairs, Mapping):
        return list(pairs.items())
    return list(pairs)


def encode_pairs(pairs: Optional[_TYPE_PAIRS]) -> str:
    """
    Encode key-value pairs as ``application/x-www-form-urlencoded``.

    Order is preserved: ``encode_pairs({"a": 1, "b": 2})`` gives ``"a=1&b=2"``.
    """
    return "&".join(
        f"{quote_plus(_to_field(key))}={quote_plus(_to_field(value))}"
        for key, value in iter_pairs(pairs)
    )


def append_query(url: str, query: str) -> str:
    """Append an encoded query string to ``url``, keeping any existing query."""
    if not query:
        return url
    url, hash_mark, fragment = url.partition("#")
    if "?" in url:
        separator = "" if url.endswith(("?", "&")) else "&"
    else:
        separator = "?"
    return f"{url}{separator}{query}{hash_mark}{fragment}"
