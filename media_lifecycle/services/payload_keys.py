"""Find storage keys referenced inside an owning entity's saved payload."""

import re
from typing import Any, List, Optional

from media_lifecycle.config import settings

# Fields that hold a bare storage key
KEY_FIELDS = ("storage_key", "storageKey", "public_id", "publicId")


def _key_pattern(prefix: str):
    prefix = prefix.strip("/")
    # Keys are bare digests when no prefix is configured
    key = rf"{re.escape(prefix)}/[0-9a-f]{{64}}" if prefix else r"[0-9a-f]{64}"
    return re.compile(rf"(?:^|/)({key})(?=$|[./?#])")


def extract_storage_keys(data: Any, prefix: Optional[str] = None) -> List[str]:
    """Collect every storage key referenced anywhere in ``data``.

    Walks nested dicts and lists. Keys are picked up from explicit key fields
    and from any string (bare key or delivery URL) containing a
    content-addressed key under ``prefix``. Order of first appearance is kept.

    Example:
        >>> payload = {"images": [{"url": f"https://cdn.example.com/assets/{digest}.png"}]}
        >>> extract_storage_keys(payload) == [f"assets/{digest}"]
        True
    """
    pattern = _key_pattern(settings.storage_key_prefix if prefix is None else prefix)
    found: List[str] = []

    def add(key: str):
        if key and key not in found:
            found.append(key)

    def walk(value: Any):
        if isinstance(value, str):
            match = pattern.search(value)
            if match:
                add(match.group(1))
        elif isinstance(value, dict):
            for field in KEY_FIELDS:
                if isinstance(value.get(field), str):
                    add(value[field].strip())
            for item in value.values():
                walk(item)
        elif isinstance(value, (list, tuple)):
            for item in value:
                walk(item)

    walk(data)
    return found
