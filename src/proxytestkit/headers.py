from __future__ import annotations

from collections.abc import Mapping
from typing import Any


def lookup(mapping: Mapping[Any, Any], key: Any) -> tuple[Any, Any]:
    """Case-insensitive lookup returning the value and the stored key.

    Header names are case-insensitive on the wire but fixtures store them
    with arbitrary casing, so callers also need the key as it is stored to
    update it in place::

        >>> lookup({"SoMeKeY": 10}, "somekey")
        (10, 'SoMeKeY')
        >>> lookup({"SoMeKeY": 10}, "NotFound")
        (None, 'NotFound')

    Non-string keys are looked up exactly.
    """
    if not isinstance(key, str):
        return mapping.get(key), key

    wanted = key.lower()
    for stored_key, value in mapping.items():
        if str(stored_key).lower() == wanted:
            return value, stored_key
    return None, key
