from pathlib import Path

import requests

from gcping.core.exceptions import ProvisioningError, UnavailableError
from gcping.core.retry import backoff
from gcping.core.utils import setup_logger

logger = setup_logger(name="providers.gcs_publisher")

CONTENT_TYPES = {
    ".html": "text/html; charset=utf-8",
    ".js": "application/javascript; charset=utf-8",
    ".json": "application/json",
    ".png": "image/png",
}

STATIC_ASSETS = ("index.html", "icon.png")


class GCSPublisher:
    """
    Uploads the rendered config and the static client page to a Cloud Storage
    bucket configured as a public website.
    """

    UPLOAD_URL = "https://storage.googleapis.com/upload/storage/v1/b"
    BUCKET_URL = "https://storage.googleapis.com/storage/v1/b"

    def __init__(
        self,
        bucket: str,
        api_key: str | None = None,
        retry_attempts: int = 5,
        retry_max_wait: float = 30.0,
        session: requests.Session | None = None,
    ):
        if not api_key:
            raise ValueError("Publishing requires an access token")
        self.bucket = bucket
        self.api_key = api_key
        self.retry_attempts = retry_attempts
        self.retry_max_wait = retry_max_wait
        self.session = session or requests.Session()

    def get_headers(self, content_type: str = "application/json"):
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": content_type,
        }

    def publish(self, documents: dict[str, bytes], assets_dir: str | None = None) -> list[str]:
        """
        Upload documents with a public-read ACL, then the static assets found
        in assets_dir, and make index.html the bucket's main page.

        Returns:
            Names of the uploaded objects
        """
        uploaded = []
        for name in sorted(documents):
            self.upload(name, documents[name])
            uploaded.append(name)

        if assets_dir:
            for name in STATIC_ASSETS:
                path = Path(assets_dir) / name
                if not path.exists():
                    logger.warning(f"Static asset {path} not found, skipping")
                    continue
                self.upload(name, path.read_bytes())
                uploaded.append(name)

        self.set_main_page("index.html")
        logger.info(f"Published {len(uploaded)} objects to gs://{self.bucket}")
        return uploaded

    def upload(self, name: str, data: bytes) -> None:
        content_type = CONTENT_TYPES.get(Path(name).suffix, "application/octet-stream")
        self._call(
            "POST",
            f"{self.UPLOAD_URL}/{self.bucket}/o",
            params={"uploadType": "media", "name": name, "predefinedAcl": "publicRead"},
            data=data,
            headers=self.get_headers(content_type),
        )
        logger.debug(f"Uploaded gs://{self.bucket}/{name} ({len(data)} bytes)")

    def set_main_page(self, name: str) -> None:
        self._call(
            "PATCH",
            f"{self.BUCKET_URL}/{self.bucket}",
            json={"website": {"mainPageSuffix": name}},
            headers=self.get_headers(),
        )

    def _call(self, method: str, url: str, **kwargs) -> None:
        retrying = backoff(attempts=self.retry_attempts, max_wait=self.retry_max_wait)
        retrying(self._send, method, url, **kwargs)

    def _send(self, method: str, url: str, **kwargs) -> None:
        try:
            response = self.session.request(method, url, timeout=60, **kwargs)
        except (requests.ConnectionError, requests.Timeout) as e:
            raise UnavailableError(f"{method} {url} failed: {e}") from e
        if response.status_code == 429 or response.status_code >= 500:
            raise UnavailableError(f"{method} {url} returned {response.status_code}")
        if not response.ok:
            raise ProvisioningError(
                f"{method} {url} returned {response.status_code}: {response.text}"
            )
