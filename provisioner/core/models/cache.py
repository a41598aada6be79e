"""CacheEntry — one downloaded artifact in the download cache."""

from __future__ import annotations

from pydantic import BaseModel


class CacheEntry(BaseModel):
    """A fully downloaded artifact, keyed by its URL's basename."""

    url: str
    filepath: str
    size_bytes: int = 0
    fetched: bool = False   # True when this call hit the network
