"""Fal queue API adapter (request / status / result)."""

import logging
import time
from typing import Any, Dict, List, Optional, Tuple, Union

import httpx

from app.config import settings
from app.errors import ProviderUnavailable
from app.schemas.provider import FetchResult, JobHandle, PollStatus
from app.services.providers.base import ProviderAdapter
from app.services.providers.media import (
    AUDIO_EXTENSIONS,
    VIDEO_EXTENSIONS,
    decode_data_uri,
    file_extension,
    infer_type_from_url,
    is_http_url,
)

logger = logging.getLogger(__name__)

# Keys that carry a single media object ({"url": ...}) in Fal results
MEDIA_KEYS = ("audio", "video", "image", "model_mesh")


def base_model_path(model_identifier: str) -> str:
    """Status and result endpoints only take the first two path segments (owner/model)."""
    parts = model_identifier.split("/")
    if len(parts) >= 2:
        return f"{parts[0]}/{parts[1]}"
    return model_identifier


def extract_output(data: Dict[str, Any]) -> Tuple[Union[str, List[str], Dict[str, Any]], str]:
    """
    Pull the output reference and media type out of a Fal result payload.

    Args:
        data: Decoded result JSON

    Returns:
        Tuple of (output reference, media type). When no URL can be found the raw
        payload is returned with media type "text".
    """
    for key in MEDIA_KEYS:
        value = data.get(key)
        if isinstance(value, dict) and value.get("url"):
            url = value["url"]
            lower = url.lower().split("?", 1)[0]
            if key == "video" or lower.endswith(VIDEO_EXTENSIONS):
                return url, "video"
            if key == "audio" or lower.endswith(AUDIO_EXTENSIONS):
                return url, "audio"
            if key == "model_mesh" or lower.endswith(".glb"):
                return url, "3d"
            return url, infer_type_from_url(url)

    if is_http_url(data.get("url")):
        return data["url"], infer_type_from_url(data["url"])

    images = data.get("images")
    if isinstance(images, list) and images:
        urls = []
        for item in images:
            # Some models wrap images in an extra list level: [[{"url": ...}]]
            if isinstance(item, list):
                item = item[0] if item else None
            if isinstance(item, dict) and item.get("url"):
                urls.append(item["url"])
            elif is_http_url(item):
                urls.append(item)
        if urls:
            return (urls[0] if len(urls) == 1 else urls), "image"

    return data, "text"


class FalAdapter(ProviderAdapter):
    """Adapter for the Fal request/poll queue API."""

    name = "fal"

    def __init__(
        self,
        queue_url: Optional[str] = None,
        storage_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """Initialize the Fal adapter."""
        super().__init__(timeout=timeout, transport=transport)
        self.queue_url = (queue_url or settings.FAL_QUEUE_URL).rstrip("/")
        self.storage_url = storage_url or settings.FAL_STORAGE_URL

    def _headers(self, api_key: str) -> Dict[str, str]:
        return {"Authorization": f"Key {api_key}"}

    def _upload_staged(self, data_uri: str, api_key: str) -> str:
        mime_type, content = decode_data_uri(data_uri)
        file_name = f"file-{int(time.time() * 1000)}.{file_extension(mime_type) or 'bin'}"

        upload = self._post_json(
            self.storage_url,
            api_key,
            {"content_type": mime_type, "file_name": file_name},
            "Fal storage initiate",
        )

        with self._client() as client:
            response = client.put(upload["upload_url"], content=content, headers={"Content-Type": mime_type})
            response.raise_for_status()

        logger.info(f"Staged {len(content)} bytes to Fal storage as {file_name}")
        return upload["file_url"]

    def start(
        self,
        model_identifier: str,
        inputs: Dict[str, Any],
        api_key: str,
        version: Optional[str] = None,
    ) -> JobHandle:
        """Submit a request to the Fal queue."""
        staged = self.stage_inputs(inputs, api_key)
        data = self._post_json(f"{self.queue_url}/{model_identifier}", api_key, staged, "Fal API")

        if not data.get("request_id"):
            raise ProviderUnavailable("No request_id found in response")

        return JobHandle(correlation_id=data["request_id"], initial_status=data.get("status") or "IN_QUEUE")

    def poll(self, model_identifier: str, correlation_id: str, api_key: str) -> PollStatus:
        """Check Fal request status."""
        url = f"{self.queue_url}/{base_model_path(model_identifier)}/requests/{correlation_id}/status"
        data = self._get_json(url, api_key, "Fal status API")

        status = data.get("status") or "UNKNOWN"
        logs = data.get("logs")
        if isinstance(logs, list):
            logs = "\n".join(entry.get("message", "") for entry in logs if isinstance(entry, dict))

        return PollStatus(completed=status == "COMPLETED", status=status, logs=logs or None)

    def fetch_result(
        self,
        model_identifier: str,
        correlation_id: str,
        api_key: str,
        elapsed: float,
    ) -> FetchResult:
        """Get the final Fal result."""
        url = f"{self.queue_url}/{base_model_path(model_identifier)}/requests/{correlation_id}"
        response = self._get_response(url, api_key, "Fal result API")

        if response.is_error:
            # Client errors here mean the request itself failed (e.g. input validation)
            if response.status_code < 500:
                return FetchResult(
                    success=False,
                    error=f"Result API error ({response.status_code}): {response.text}",
                    processing_time=elapsed,
                )
            raise ProviderUnavailable(f"Fal result API error ({response.status_code}): {response.text}")

        output_ref, media_type = extract_output(response.json())

        return FetchResult(success=True, output_ref=output_ref, media_type=media_type, processing_time=elapsed)

    def cancel(self, model_identifier: str, correlation_id: str, api_key: str) -> bool:
        url = f"{self.queue_url}/{base_model_path(model_identifier)}/requests/{correlation_id}/cancel"
        with self._client() as client:
            response = client.put(url, headers=self._headers(api_key))
        return response.is_success
