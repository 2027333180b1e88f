"""Helpers for safe debug logging.

Requests carry bearer tokens and responses may carry customer contact
details.  Everything logged at DEBUG by the transport passes through
:func:`redact_for_log` first.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from typing import Any

_SENSITIVE_KEYS: frozenset[str] = frozenset(
    {
        "accesstoken",
        "apikey",
        "authorization",
        "contactphone",
        "cookie",
        "password",
        "refreshtoken",
        "token",
    }
)

_BEARER_RE = re.compile(r"(?i)\b(bearer)\s+[A-Za-z0-9\-._~+/]+=*")


def _is_sensitive(key: str) -> bool:
    return key.replace("_", "").replace("-", "").lower() in _SENSITIVE_KEYS


def _redact_text(text: str, max_string: int) -> str:
    text = _BEARER_RE.sub(r"\1 <redacted>", text)
    if len(text) > max_string:
        return f"{text[:max_string]}…<truncated>"
    return text


def redact_for_log(value: Any, *, max_string: int = 512, _depth: int = 0) -> Any:
    """Return a redacted copy of *value* suitable for debug logs.

    Keys are matched case-insensitively ignoring ``_`` and ``-``, so
    ``access_token``, ``accessToken`` and ``Access-Token`` are all masked.
    Bearer credentials embedded in free text are masked too.
    """
    if _depth > 20:
        return "<max-depth>"

    if value is None or isinstance(value, (int, float, bool)):
        return value

    if isinstance(value, str):
        return _redact_text(value, max_string)

    if isinstance(value, bytes):
        return f"<bytes:{len(value)}b>"

    if isinstance(value, Mapping):
        return {
            str(k): "<redacted>" if _is_sensitive(str(k)) else redact_for_log(v, max_string=max_string, _depth=_depth + 1)
            for k, v in value.items()
        }

    if isinstance(value, Sequence):
        return [redact_for_log(v, max_string=max_string, _depth=_depth + 1) for v in value]

    return repr(value)
