"""Infrastructure helpers for networking, caching and the studio backend."""

from .api import StudioApiClient
from .cache import CACHE, SourceCache
from .network import FETCHER, SourceFetcher
from .responses import send_png

__all__ = [
    "CACHE",
    "SourceCache",
    "FETCHER",
    "SourceFetcher",
    "StudioApiClient",
    "send_png",
]
