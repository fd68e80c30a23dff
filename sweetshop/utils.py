import html
import re
from typing import Optional

import bleach

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_WHITESPACE = re.compile(r"\s+")
_MAX_PASSES = 5


def clean_text(value: Optional[str]) -> Optional[str]:
    """Sanitize a user-supplied catalog string before it is stored.

    - Strips HTML tags using bleach.clean(..., strip=True)
    - Unescapes the entities bleach leaves behind, repeating until nothing
      changes so an escaped tag cannot survive as a real one
    - Removes NUL and other control characters
    - Collapses runs of whitespace and trims the ends

    ``None`` passes through so optional fields stay unset.
    """
    if value is None:
        return None
    val = _CONTROL_CHARS.sub("", value)
    for _ in range(_MAX_PASSES):
        cleaned = html.unescape(bleach.clean(val, tags=set(), strip=True))
        if cleaned == val:
            break
        val = cleaned
    else:
        # Still changing: fall back to the escaped form
        val = bleach.clean(val, tags=set(), strip=True)
    val = _CONTROL_CHARS.sub("", val)
    return _WHITESPACE.sub(" ", val).strip()


def normalize_email(email: str) -> str:
    return email.strip().lower()
