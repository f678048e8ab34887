"""Vista kernel utilities."""

from .canonical_json import CanonicalJsonTypeError, canonical_dumps
from .query_key import query_key

__all__ = [
    "CanonicalJsonTypeError",
    "canonical_dumps",
    "query_key",
]
