"""Request body and query string encoding.

A structured body (a mapping, or a sequence that is not ``bytes`` or ``str``)
is serialized according to the request's Content-Type. Raw bodies and unknown
content types pass through untouched.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from collections.abc import Sequence
from dataclasses import dataclass
from dataclasses import field
from dataclasses import replace
from enum import Enum
from typing import Any
from urllib.parse import quote

from .headers import lookup

MULTIPART_BOUNDARY = "8fd84e9444e3946c"


class BodyFormat(Enum):
    JSON = "application/json"
    FORM = "www-form-urlencoded"
    MULTIPART = "multipart/form-data"
    RAW = ""

    @classmethod
    def from_content_type(cls, content_type: str) -> BodyFormat:
        for fmt in (cls.JSON, cls.FORM, cls.MULTIPART):
            if fmt.value in content_type:
                return fmt
        return cls.RAW


@dataclass
class RequestOptions:
    method: str = "GET"
    path: str = "/"
    headers: dict[str, Any] = field(default_factory=dict)
    body: Any = None
    query: Mapping[str, Any] | None = None
    timeout_seconds: float | None = None


def is_structured(body: Any) -> bool:
    if isinstance(body, (bytes, bytearray, str)):
        return False
    return isinstance(body, (Mapping, Sequence))


def as_fields(body: Mapping[Any, Any] | Sequence[Any]) -> Mapping[Any, Any]:
    """Return form fields for ``body``; sequence items are keyed by 1-based index."""
    if isinstance(body, Mapping):
        return body
    return dict(enumerate(body, 1))


def _sort_key(key: Any) -> tuple[int, Any]:
    # index keys sort numerically, ahead of names
    if isinstance(key, int) and not isinstance(key, bool):
        return 0, key
    return 1, str(key)


def _encode_value(value: Any, raw: bool) -> str:
    if raw:
        return str(value)
    return quote(str(value), safe="")


def encode_args(args: Mapping[Any, Any], raw: bool = False) -> str:
    """Encode a mapping as ``key=value`` pairs joined by ``&``.

    Keys are sorted. A list value repeats its key once per element, ``True``
    and the empty string produce the bare key, and ``False`` and ``None``
    are dropped. With ``raw`` set, keys and values are emitted as-is instead
    of being percent-encoded.
    """
    pairs: list[str] = []
    for key in sorted(args, key=_sort_key):
        value = args[key]
        name = _encode_value(key, raw)
        values = value if isinstance(value, (list, tuple)) else [value]
        for v in values:
            if v is True or v == "":
                pairs.append(name)
            elif v is False or v is None:
                continue
            else:
                pairs.append(f"{name}={_encode_value(v, raw)}")
    return "&".join(pairs)


def encode_multipart(form: Mapping[Any, Any], boundary: str = MULTIPART_BOUNDARY) -> str:
    # Field names are not escaped and file parts are not supported.
    parts = [
        f'--{boundary}\r\nContent-Disposition: form-data; name="{key}"\r\n\r\n{value}\r\n'
        for key, value in form.items()
    ]
    parts.append(f"--{boundary}--\r\n")
    return "".join(parts)


def _encode_body(options: RequestOptions) -> None:
    content_type, content_type_key = lookup(options.headers, "Content-Type")
    content_type = content_type or ""
    fmt = BodyFormat.from_content_type(content_type)
    if not is_structured(options.body):
        return

    if fmt is BodyFormat.JSON:
        options.body = json.dumps(options.body)
    elif fmt is BodyFormat.FORM:
        options.body = encode_args(as_fields(options.body), raw=True)
    elif fmt is BodyFormat.MULTIPART:
        body = encode_multipart(as_fields(options.body))
        content_length, _ = lookup(options.headers, "content-length")
        if content_length is None:
            options.headers["content-length"] = str(len(body.encode("utf-8")))
        if "boundary=" not in content_type:
            options.headers[content_type_key] = f"{content_type}; boundary={MULTIPART_BOUNDARY}"
        options.body = body
    elif fmt is BodyFormat.RAW:
        pass


def prepare_request(options: RequestOptions) -> RequestOptions:
    """Return an encoded working copy of ``options``.

    The body is serialized according to its Content-Type and a mapping
    ``query`` is appended to the path (which must not carry a query string
    already). The caller's options and headers are left unmodified.
    """
    prepared = replace(options, headers=dict(options.headers))
    _encode_body(prepared)

    if isinstance(prepared.query, Mapping):
        prepared.path = f"{prepared.path}?{encode_args(prepared.query)}"
        prepared.query = None
    return prepared
