from __future__ import annotations

import html
import re
from typing import Any, Dict, Iterable, Optional

_TAG_RE = re.compile(r"<[^>]*>")


def clean_text(value: Any) -> Optional[str]:
    """Strip markup and HTML-escape a free-text value.

    None stays None so optional columns keep their NULLs.
    """
    if value is None:
        return None
    s = _TAG_RE.sub("", str(value))
    return html.escape(s, quote=True)


def clean_fields(data: Dict[str, Any], fields: Iterable[str]) -> Dict[str, Any]:
    out = dict(data)
    for f in fields:
        if f in out:
            out[f] = clean_text(out[f])
    return out


def reject_nulls(fields: Dict[str, Any], columns: Iterable[str]) -> None:
    """Explicit nulls for NOT NULL columns raise ValueError("<column>_required")."""
    for c in columns:
        if c in fields and fields[c] is None:
            raise ValueError(f"{c}_required")
