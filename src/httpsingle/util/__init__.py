# For convenience, allow you to access the helpers from here.
from .request import ACCEPT_ENCODING, append_query, encode_pairs, make_headers
from .url import Url, parse_url, resolve_location

__all__ = (
    "ACCEPT_ENCODING",
    "Url",
    "append_query",
    "encode_pairs",
    "make_headers",
    "parse_url",
    "resolve_location",
)
