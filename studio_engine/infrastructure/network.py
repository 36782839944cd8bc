from __future__ import annotations

import logging
import time
from typing import Callable, Mapping

from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import requests

from ..config import SETTINGS, StudioSettings
from ..errors import LoadFailure
from .cache import CACHE, SourceCache


SessionFactory = Callable[[], requests.Session]

USER_AGENT = "studio-engine/1.0"
ACCEPTED_TYPES = ("image/", "application/octet-stream", "binary/octet-stream")
CHUNK_SIZE = 64 * 1024

log = logging.getLogger(__name__)


def _merge_query_params(url: str, overrides: Mapping[str, str | None] | None) -> str:
    """Merge override query parameters into ``url``.

    Parameters with a value of ``None`` are removed from the query string. Values
    are treated as opaque strings and percent-encoded on the way out.
    """

    if not overrides:
        return url

    parts = urlsplit(url)
    query = dict(parse_qsl(parts.query, keep_blank_values=True))

    for key, value in overrides.items():
        if value is None:
            query.pop(key, None)
        else:
            query[key] = value

    return urlunsplit(parts._replace(query=urlencode(query, doseq=True)))


def download_url(ref: str, settings: StudioSettings = SETTINGS) -> str:
    """Authenticated download endpoint of the studio API for ``ref``."""

    if not settings.api_url:
        raise ValueError("API_URL is not configured")
    return _merge_query_params(f"{settings.api_url}/api/download", {"url": ref})


def auth_headers(settings: StudioSettings = SETTINGS) -> dict:
    return {"Authorization": f"Bearer {settings.api_token}"} if settings.api_token else {}


def _check_headers(response: requests.Response) -> None:
    response.raise_for_status()
    content_type = (response.headers.get("Content-Type") or "").lower()
    if content_type and not content_type.startswith(ACCEPTED_TYPES):
        raise LoadFailure(f"Unexpected content type {content_type!r}")


class SourceFetcher:
    """Fetch source image bytes with a direct-then-authenticated strategy.

    The whole fetch shares a single deadline: each request is given whatever
    time is left, and running out of it is a ``LoadFailure``. There is no
    automatic retry.
    """

    def __init__(
        self,
        session_factory: SessionFactory | None = None,
        cache: SourceCache | None = None,
        settings: StudioSettings = SETTINGS,
    ) -> None:
        self._session_factory = session_factory or requests.Session
        self._session = self._create_session()
        self._cache = CACHE if cache is None else cache
        self.settings = settings

    def _create_session(self) -> requests.Session:
        session = self._session_factory()
        session.headers.update({"User-Agent": USER_AGENT})
        return session

    def _remaining(self, deadline: float) -> float:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise LoadFailure(f"Timed out after {self.settings.load_timeout:.1f}s")
        return remaining

    def _read(self, response: requests.Response, deadline: float) -> bytes:
        """Read a streamed body chunk by chunk; ``deadline`` bounds the whole read."""

        try:
            _check_headers(response)
            body = bytearray()
            for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                self._remaining(deadline)
                body.extend(chunk)
        finally:
            response.close()
        if not body:
            raise LoadFailure("Empty response body")
        return bytes(body)

    def _direct(self, ref: str, deadline: float) -> bytes:
        response = self._session.get(ref, timeout=self._remaining(deadline), stream=True)
        return self._read(response, deadline)

    def _authenticated(self, ref: str, deadline: float) -> bytes:
        response = self._session.get(
            download_url(ref, self.settings),
            headers=auth_headers(self.settings),
            timeout=self._remaining(deadline),
            stream=True,
        )
        return self._read(response, deadline)

    def fetch(self, ref: str, timeout: float | None = None) -> bytes:
        cached = self._cache.get(ref)
        if cached is not None:
            return cached

        deadline = time.monotonic() + (self.settings.load_timeout if timeout is None else timeout)
        try:
            data = self._direct(ref, deadline)
        except (requests.RequestException, LoadFailure) as exc:
            if not self.settings.api_url:
                raise LoadFailure(f"Could not fetch {ref}: {exc}") from exc
            log.info("Direct fetch of %s failed (%s); using authenticated download", ref, exc)
            try:
                data = self._authenticated(ref, deadline)
            except (requests.RequestException, LoadFailure) as fallback_exc:
                raise LoadFailure(f"Could not fetch {ref}: {fallback_exc}") from fallback_exc

        self._cache.put(ref, data)
        return data


FETCHER = SourceFetcher()
