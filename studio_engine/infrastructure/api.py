"""Client for the studio backend used at commit time.

Covers the endpoints the editor needs: uploading encoded output, recording it
as a new version of a project item, removing versions and queueing inpaint
jobs from a highlight mask.
"""

from __future__ import annotations

import logging
from typing import Any, List

import requests

from ..config import SETTINGS, StudioSettings
from ..errors import CommitFailure, UploadFailure, VersioningFailure
from .network import USER_AGENT, SessionFactory, auth_headers

log = logging.getLogger(__name__)

REQUEST_TIMEOUT = 60.0


class StudioApiClient:
    def __init__(
        self,
        session_factory: SessionFactory | None = None,
        settings: StudioSettings = SETTINGS,
        timeout: float = REQUEST_TIMEOUT,
    ) -> None:
        self._session_factory = session_factory or requests.Session
        self._session = self._session_factory()
        self._session.headers.update({"User-Agent": USER_AGENT, **auth_headers(settings)})
        self.settings = settings
        self.timeout = timeout

    def _url(self, path: str) -> str:
        if not self.settings.api_url:
            raise CommitFailure("API_URL is not configured")
        return f"{self.settings.api_url}{path}"

    def _json(self, response: requests.Response) -> Any:
        response.raise_for_status()
        try:
            return response.json()
        except ValueError as exc:
            raise requests.RequestException(f"Invalid JSON from {response.url}") from exc

    def upload(self, data: bytes, filename: str = "edit.png", content_type: str = "image/png") -> str:
        """Store ``data`` and return its public URL."""

        try:
            response = self._session.post(
                self._url("/api/upload"),
                files={"files": (filename, data, content_type)},
                timeout=self.timeout,
            )
            urls = self._json(response).get("urls") or []
        except (requests.RequestException, AttributeError) as exc:
            raise UploadFailure(f"Upload failed: {exc}") from exc
        if not urls:
            raise UploadFailure("Upload returned no URL")
        log.info("Uploaded %s (%d bytes) to %s", filename, len(data), urls[0])
        return urls[0]

    def list_versions(self, item_id: str) -> List[dict]:
        try:
            response = self._session.get(
                self._url(f"/api/projects/items/{item_id}/versions"),
                timeout=self.timeout,
            )
            return list(self._json(response).get("versions") or [])
        except (requests.RequestException, AttributeError) as exc:
            raise VersioningFailure(f"Listing versions of {item_id} failed: {exc}") from exc

    def add_version(self, item_id: str, url: str, metadata: dict | None = None) -> int:
        """Record ``url`` as the next version of ``item_id`` and return its number.

        The backend acknowledges without echoing the number, so the newest
        version carrying ``url`` is read back from the version list.
        """

        if not url.startswith("https://"):
            raise VersioningFailure(f"Version URL must be https: {url}")
        body: dict = {"url": url}
        if metadata:
            body["metadata"] = metadata
        try:
            response = self._session.post(
                self._url(f"/api/projects/items/{item_id}/versions"),
                json=body,
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            raise VersioningFailure(f"Adding version to {item_id} failed: {exc}") from exc

        numbers = [int(v.get("version_num", 0)) for v in self.list_versions(item_id) if v.get("url") == url]
        if not numbers:
            raise VersioningFailure(f"Version for {url} not found after adding it")
        return max(numbers)

    def remove_version(self, item_id: str, number: int) -> None:
        if number < 1:
            raise VersioningFailure("The original (version 0) cannot be removed")
        try:
            response = self._session.delete(
                self._url(f"/api/projects/items/{item_id}/versions/{number}"),
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            raise VersioningFailure(f"Removing version {number} of {item_id} failed: {exc}") from exc

    def create_inpaint_job(self, prompt: str, image_ref: str, mask_ref: str) -> str:
        """Queue an image job with the source image and its mask as inputs."""

        if not prompt.strip():
            raise CommitFailure("An inpaint prompt is required")
        try:
            response = self._session.post(
                self._url("/api/image"),
                json={"prompt": prompt, "image_input": [image_ref, mask_ref]},
                timeout=self.timeout,
            )
            job_id = self._json(response).get("job_id")
        except (requests.RequestException, AttributeError) as exc:
            raise CommitFailure(f"Inpaint job could not be created: {exc}") from exc
        if not job_id:
            raise CommitFailure("Inpaint job response carried no job id")
        log.info("Queued inpaint job %s", job_id)
        return str(job_id)
