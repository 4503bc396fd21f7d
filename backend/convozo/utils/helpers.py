# backend/convozo/utils/helpers.py

import datetime
import re
from typing import Dict, List, Mapping

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

# Stripe rejects metadata values longer than this.
METADATA_VALUE_LIMIT = 500


def is_valid_email(value: str) -> bool:
    return bool(EMAIL_RE.match(value or ""))


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


# -------------------------------------------------
# METADATA TEXT CHUNKING
# -------------------------------------------------
def split_metadata_text(key: str, text: str, limit: int = METADATA_VALUE_LIMIT) -> Dict[str, str]:
    """
    Spread `text` over `key`, `key_2`, `key_3`, ... so no value exceeds `limit`.
    An empty text still produces `key` with an empty value.
    """
    chunks: List[str] = [text[i:i + limit] for i in range(0, len(text), limit)] or [""]
    out = {key: chunks[0]}
    for n, chunk in enumerate(chunks[1:], start=2):
        out[f"{key}_{n}"] = chunk
    return out


def join_metadata_text(metadata: Mapping[str, str], key: str) -> str:
    parts = [metadata.get(key) or ""]
    n = 2
    while f"{key}_{n}" in metadata:
        parts.append(metadata[f"{key}_{n}"] or "")
        n += 1
    return "".join(parts)
