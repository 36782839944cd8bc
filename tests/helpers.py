import io
import time
from typing import Dict, List

import requests
from PIL import Image

from studio_engine.errors import LoadFailure, UploadFailure


def png_bytes(size=(40, 20), color=(120, 80, 40, 255)) -> bytes:
    out = io.BytesIO()
    Image.new("RGBA", size, color).save(out, "PNG")
    return out.getvalue()


class FakeResponse:
    def __init__(self, content=b"", status_code=200, content_type="image/png", payload=None, url="", chunk_delay=0.0, max_chunk=None):
        self.content = content
        self.chunk_delay = chunk_delay
        self.max_chunk = max_chunk
        self.closed = False
        self.status_code = status_code
        self.headers = {"Content-Type": content_type} if content_type else {}
        self._payload = payload
        self.url = url

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} for {self.url}")

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload

    def iter_content(self, chunk_size=1):
        chunk_size = min(chunk_size, self.max_chunk or chunk_size)
        for start in range(0, len(self.content), chunk_size):
            if self.chunk_delay:
                time.sleep(self.chunk_delay)
            yield self.content[start : start + chunk_size]

    def close(self):
        self.closed = True


class FakeHttpSession:
    """Stands in for ``requests.Session``; responses are queued per URL."""

    def __init__(self, routes=None):
        self.headers: Dict[str, str] = {}
        self.routes = dict(routes or {})
        self.calls: List[tuple] = []

    def _respond(self, method, url, kwargs):
        self.calls.append((method, url, kwargs))
        result = self.routes.get((method, url), self.routes.get(url))
        if isinstance(result, Exception):
            raise result
        if result is None:
            return FakeResponse(status_code=404, content_type="text/plain", url=url)
        return result

    def get(self, url, **kwargs):
        return self._respond("GET", url, kwargs)

    def post(self, url, **kwargs):
        return self._respond("POST", url, kwargs)

    def delete(self, url, **kwargs):
        return self._respond("DELETE", url, kwargs)


class FakeFetcher:
    def __init__(self, images=None):
        self.images = dict(images or {})
        self.requested: List[str] = []

    def fetch(self, ref, timeout=None):
        self.requested.append(ref)
        if ref not in self.images:
            raise LoadFailure(f"Could not fetch {ref}")
        return self.images[ref]


class FakeApi:
    def __init__(self, fail_upload=False):
        self.fail_upload = fail_upload
        self.uploads: List[tuple] = []
        self.versions: List[tuple] = []
        self.removed: List[tuple] = []
        self.jobs: List[tuple] = []

    def upload(self, data, filename="edit.png"):
        if self.fail_upload:
            raise UploadFailure("storage unavailable")
        self.uploads.append((filename, data))
        return f"https://cdn.example/{len(self.uploads)}.png"

    def add_version(self, item_id, url):
        self.versions.append((item_id, url))
        return len(self.versions)

    def remove_version(self, item_id, number):
        self.removed.append((item_id, number))

    def create_inpaint_job(self, prompt, image_ref, mask_ref):
        self.jobs.append((prompt, image_ref, mask_ref))
        return "job-1"


SOURCE_URL = "https://cdn.example/original.png"
