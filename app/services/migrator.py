"""Copy provider-hosted outputs into platform storage."""

import logging
import re
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Optional

import httpx

from app.config import settings
from app.services.providers.media import file_extension, is_http_url, mime_for_media_type
from app.services.storage import ObjectStorage

logger = logging.getLogger(__name__)

GENERIC_CONTENT_TYPE = "application/octet-stream"

UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class OutputMigrator:
    """Best-effort migration of output URLs; never fails a run."""

    def __init__(
        self,
        storage: Optional[ObjectStorage] = None,
        max_workers: Optional[int] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """Initialize the migrator."""
        self.storage = storage or ObjectStorage()
        self.max_workers = max_workers or settings.MIGRATION_CONCURRENCY
        self.transport = transport

    def migrate(self, output_ref: Any, workflow_name: str, media_type: str) -> Any:
        """
        Migrate one reference or a list of references.

        Args:
            output_ref: URL, list of URLs, or a non-URL value (passed through)
            workflow_name: Used as the storage key prefix
            media_type: 'image', 'video', 'audio', '3d' or 'text'

        Returns:
            Same shape as ``output_ref`` with each element migrated, or left unchanged
            when its migration failed
        """
        if isinstance(output_ref, list):
            if not output_ref:
                return output_ref
            logger.info(f"Uploading {len(output_ref)} outputs to storage...")
            workers = min(self.max_workers, len(output_ref))
            with ThreadPoolExecutor(max_workers=workers) as pool:
                futures = [
                    pool.submit(self._migrate_one, ref, workflow_name, media_type, index)
                    for index, ref in enumerate(output_ref)
                ]
                return [future.result() for future in futures]

        return self._migrate_one(output_ref, workflow_name, media_type)

    def _migrate_one(self, ref: Any, workflow_name: str, media_type: str, index: Optional[int] = None) -> Any:
        if not is_http_url(ref):
            return ref

        try:
            logger.info(f"Uploading output to storage: {ref}")

            with httpx.Client(timeout=120.0, follow_redirects=True, transport=self.transport) as client:
                response = client.get(ref)
                response.raise_for_status()

            content_type = response.headers.get("content-type", "").split(";", 1)[0].strip()
            if not content_type or content_type == GENERIC_CONTENT_TYPE:
                content_type = mime_for_media_type(media_type)

            key = f"{UNSAFE_KEY_CHARS.sub('-', workflow_name)}-{int(time.time() * 1000)}"
            if index is not None:
                key = f"{key}-{index}"
            extension = file_extension(content_type)
            if extension:
                key = f"{key}.{extension}"

            return self.storage.upload(response.content, key, content_type)

        except Exception as e:
            logger.error(f"Failed to upload output to storage, falling back to original URL {ref}: {e}")
            return ref
