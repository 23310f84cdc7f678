"""Key-casing normalization for nested reply/request data.

The external library speaks camelCase (``baseVolume``, ``quoteId``); the
domain records use snake_case. Both transforms walk dicts and lists
recursively and only touch string keys.
"""

import re
from typing import Any, Iterable

from exbridge.errors import SchemaMismatchError

_LOWER_UPPER = re.compile(r"([a-z0-9])([A-Z])")
_ACRONYM_WORD = re.compile(r"([A-Z]+)([A-Z][a-z])")


def snake_case(key: str) -> str:
    """Convert one key: ``quoteVolume`` -> ``quote_volume``, ``fetchL2OrderBook`` -> ``fetch_l2_order_book``."""
    key = _ACRONYM_WORD.sub(r"\1_\2", key)
    key = _LOWER_UPPER.sub(r"\1_\2", key)
    return key.lower()


def camel_case(key: str) -> str:
    """Convert one key: ``quote_volume`` -> ``quoteVolume``."""
    head, *rest = key.split("_")
    return head + "".join(word[:1].upper() + word[1:] for word in rest)


def _rewrite_keys(data: Any, transform) -> Any:
    if isinstance(data, dict):
        return {
            (transform(k) if isinstance(k, str) else k): _rewrite_keys(v, transform)
            for k, v in data.items()
        }
    if isinstance(data, list):
        return [_rewrite_keys(item, transform) for item in data]
    return data


def to_snake_case(data: Any) -> Any:
    return _rewrite_keys(data, snake_case)


def to_camel_case(data: Any) -> Any:
    return _rewrite_keys(data, camel_case)


def to_field_keys(data: dict, fields: Iterable[str], record: str = "record") -> dict:
    """Check that every top-level key names a field of ``record``.

    :param data: Snake-cased mapping.
    :param fields: Field names of the target record.
    :param record: Record name, used in the error message.
    :raises SchemaMismatchError: If a key is not a known field.
    :return: ``data`` unchanged.
    """
    if not isinstance(data, dict):
        raise SchemaMismatchError(f"{record}: expected an object, got {type(data).__name__}")
    known = set(fields)
    unknown = sorted(str(k) for k in data if k not in known)
    if unknown:
        raise SchemaMismatchError(f"{record}: unexpected keys {unknown}")
    return data
