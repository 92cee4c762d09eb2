# === NAVMAP v1 ===
# {
#   "module": "httpsession.parsing",
#   "purpose": "Split, parse, and decode combined header/body response buffers.",
#   "sections": [
#     {"id": "split-response", "name": "split_response", "anchor": "function-split-response", "kind": "function"},
#     {"id": "parse-header-block", "name": "parse_header_block", "anchor": "function-parse-header-block", "kind": "function"},
#     {"id": "decode-body", "name": "decode_body", "anchor": "function-decode-body", "kind": "function"},
#     {"id": "build-query", "name": "build_query", "anchor": "function-build-query", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Split, parse, and decode combined header/body response buffers.

A transfer hands back one buffer: the header block, an empty line, and the
body. The helpers here turn that buffer into the ``head`` mapping and ``body``
value of a :class:`~httpsession.models.ResponseEnvelope`, and build the
form-encoded request bodies that :meth:`HttpSession.post` sends.

Example:
    >>> head, body = split_response(b"HTTP/1.1 200 OK\\r\\nContent-Type: text/plain\\r\\n\\r\\nhi")
    >>> parse_header_block(head)
    {'HTTP/1.1': '200 OK', 'Content-Type': 'Text/Plain'}
"""

from __future__ import annotations

import codecs
import json
import re
from typing import Any, Dict, List, Mapping, Optional, Tuple
from urllib.parse import urlencode

from .errors import MalformedResponseError, ResponseDecodeError

__all__ = [
    "HEADER_SEPARATOR",
    "JSON_CONTENT_TYPE",
    "build_query",
    "canonical_header_name",
    "decode_body",
    "is_json_content_type",
    "parse_header_block",
    "split_response",
    "title_case",
]

#: Separator between the header block and the body
HEADER_SEPARATOR = b"\r\n\r\n"

#: Content type prefix that triggers JSON decoding
JSON_CONTENT_TYPE = "application/json"

_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1

_LINE_SPLIT = re.compile(r":|\s+")
_WORD_BOUNDARY = re.compile(r"(^|[-/])(\w)")
_CHARSET = re.compile(r"charset\s*=\s*\"?([\w.:-]+)", re.IGNORECASE)


# ============================================================================
# Header Block
# ============================================================================


def title_case(value: str) -> str:
    """Upper-case the first character and every character following ``-`` or ``/``.

    Other characters are left untouched, so ``"application/json"`` becomes
    ``"Application/Json"`` and ``"X-ID"`` stays ``"X-ID"``.
    """
    return _WORD_BOUNDARY.sub(lambda match: match.group(1) + match.group(2).upper(), value)


def canonical_header_name(name: str) -> str:
    """Return the conventional wire spelling of a header name (``content-type`` -> ``Content-Type``)."""

    return "-".join(part[:1].upper() + part[1:].lower() for part in name.strip().split("-"))


def split_response(raw: bytes) -> Tuple[bytes, bytes]:
    """Split a combined buffer on its first blank line.

    Raises:
        MalformedResponseError: If the buffer holds no CRLF CRLF separator.
    """
    head, separator, body = raw.partition(HEADER_SEPARATOR)
    if not separator:
        raise MalformedResponseError("Response is missing the header/body separator")
    return head, body


def parse_header_block(head: bytes | str, *, title_case_part: str = "value") -> Dict[str, str]:
    """Parse a CRLF-separated header block into a mapping.

    Each line is split on its first colon or whitespace run into a key and a
    value; both are trimmed. The value is then title-cased (see
    :func:`title_case`), so the status line ``HTTP/1.1 200 OK`` becomes the
    entry ``{"HTTP/1.1": "200 OK"}``. Lines without a separator map to an
    empty value and repeated keys keep their last value.

    Args:
        head: Raw header block, without the trailing blank line.
        title_case_part: ``"value"`` (default) title-cases values; ``"key"``
            title-cases keys instead and leaves values verbatim.

    Returns:
        Mapping of header key to value.
    """
    if title_case_part not in ("value", "key"):
        raise ValueError(f"title_case_part must be 'value' or 'key', got {title_case_part!r}")
    if isinstance(head, bytes):
        head = head.decode("utf-8", errors="replace")

    parsed: Dict[str, str] = {}
    for line in head.split("\r\n"):
        parts = _LINE_SPLIT.split(line, maxsplit=1)
        key = parts[0].strip()
        value = parts[1].strip() if len(parts) > 1 else ""
        if title_case_part == "value":
            value = title_case(value)
        else:
            key = title_case(key)
        parsed[key] = value
    return parsed


# ============================================================================
# Body Decoding
# ============================================================================


def is_json_content_type(content_type: Optional[str]) -> bool:
    """Return ``True`` when the first 16 characters spell ``application/json``."""

    if not content_type:
        return False
    return content_type[: len(JSON_CONTENT_TYPE)].lower() == JSON_CONTENT_TYPE


def _parse_int(token: str) -> Any:
    if len(token.lstrip("-")) > 19:
        return token
    value = int(token)
    if _INT64_MIN <= value <= _INT64_MAX:
        return value
    return token


def _reject_constant(token: str) -> Any:
    raise ValueError(f"Non-standard JSON constant {token!r}")


def _charset(content_type: Optional[str]) -> str:
    match = _CHARSET.search(content_type or "")
    if match is None:
        return "utf-8"
    try:
        return codecs.lookup(match.group(1)).name
    except LookupError:
        return "utf-8"


def decode_body(head: Mapping[str, str], body: bytes) -> Any:
    """Decode a response body according to the parsed ``Content-Type``.

    JSON content is parsed with invalid UTF-8 replaced and integers outside
    the signed 64-bit range kept as strings; an empty JSON body yields
    ``None``. Anything else is returned as text.

    Raises:
        ResponseDecodeError: If a JSON content type carries malformed JSON,
            including ``NaN``/``Infinity`` constants and nesting too deep to decode.
    """
    content_type = head.get("Content-Type")
    if not is_json_content_type(content_type):
        return body.decode(_charset(content_type), errors="replace")

    text = body.decode("utf-8", errors="replace")
    if not text.strip():
        return None
    try:
        return json.loads(text, parse_int=_parse_int, parse_constant=_reject_constant)
    except (ValueError, RecursionError) as exc:
        raise ResponseDecodeError(f"Invalid JSON response body: {exc}", body=text) from exc


# ============================================================================
# Request Bodies
# ============================================================================


def _flatten(pairs: List[Tuple[str, Any]], value: Any, prefix: Optional[str]) -> None:
    items = value.items() if isinstance(value, Mapping) else enumerate(value)
    for key, item in items:
        name = str(key) if prefix is None else f"{prefix}[{key}]"
        if item is None:
            continue
        if isinstance(item, (Mapping, list, tuple)):
            _flatten(pairs, item, name)
        elif isinstance(item, bool):
            pairs.append((name, "1" if item else "0"))
        elif isinstance(item, bytes):
            pairs.append((name, item))
        else:
            pairs.append((name, str(item)))


def build_query(data: Mapping[str, Any] | List[Any] | Tuple[Any, ...]) -> str:
    """Form-encode nested data the way HTML forms and PHP's ``http_build_query`` do.

    Example:
        >>> build_query({"a": "1", "tags": ["x", "y"], "skip": None, "on": True})
        'a=1&tags%5B0%5D=x&tags%5B1%5D=y&on=1'
    """
    pairs: List[Tuple[str, Any]] = []
    _flatten(pairs, data, None)
    return urlencode(pairs)
