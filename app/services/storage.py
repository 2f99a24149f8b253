"""Platform object storage client."""

import logging
from typing import Optional

import httpx

from app.config import settings
from app.errors import StorageUploadFailed

logger = logging.getLogger(__name__)


class ObjectStorage:
    """Client for a blob store that accepts PUT by pathname and returns a public URL."""

    def __init__(
        self,
        api_url: Optional[str] = None,
        token: Optional[str] = None,
        folder: Optional[str] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """Initialize the storage client."""
        self.api_url = (api_url or settings.STORAGE_API_URL).rstrip("/")
        self.token = token if token is not None else settings.STORAGE_TOKEN
        self.folder = folder if folder is not None else settings.STORAGE_FOLDER
        self.transport = transport

    def upload(self, data: bytes, key: str, content_type: str) -> str:
        """
        Upload bytes and return their stable URL.

        Args:
            data: File content
            key: Unique object key (without folder)
            content_type: MIME type stored with the object

        Returns:
            Public URL of the stored object

        Raises:
            StorageUploadFailed: On transport errors, error responses or a missing URL
        """
        pathname = f"{self.folder}/{key}" if self.folder else key
        headers = {
            "Authorization": f"Bearer {self.token}",
            "x-content-type": content_type,
            "Content-Type": content_type,
        }

        try:
            with httpx.Client(timeout=120.0, transport=self.transport) as client:
                response = client.put(f"{self.api_url}/{pathname}", content=data, headers=headers)
                response.raise_for_status()
                url = response.json().get("url")
        except (httpx.HTTPError, ValueError) as e:
            raise StorageUploadFailed(f"Upload of {pathname} failed: {e}") from e

        if not url:
            raise StorageUploadFailed(f"Upload of {pathname} returned no URL")

        logger.info(f"Uploaded {len(data)} bytes to {url}")
        return url
