"""Replicate predictions API adapter."""

import logging
import re
import time
from typing import Any, Dict, Optional

import httpx

from app.config import settings
from app.errors import ProviderUnavailable
from app.schemas.provider import FetchResult, JobHandle, PollStatus
from app.services.providers.base import ProviderAdapter
from app.services.providers.media import decode_data_uri, file_extension, infer_type_from_url, is_http_url

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = ("succeeded", "failed", "canceled")

PERCENT_RE = re.compile(r"(\d{1,3})%")


def extract_output_url(output: Any) -> Optional[str]:
    """Find a single URL in a prediction output of unknown shape."""
    if not output:
        return None
    if isinstance(output, str):
        return output
    if isinstance(output, list) and isinstance(output[0], str):
        return output[0]
    if isinstance(output, dict):
        for key in ("url", "image", "video", "glb"):
            if isinstance(output.get(key), str):
                return output[key]
    return None


def progress_from_logs(logs: Optional[str]) -> Optional[float]:
    """Last percentage printed by a progress bar in the prediction logs."""
    if not logs:
        return None
    matches = PERCENT_RE.findall(logs)
    if not matches:
        return None
    return float(min(int(matches[-1]), 100))


class ReplicateAdapter(ProviderAdapter):
    """Adapter for the Replicate prediction/poll API."""

    name = "replicate"

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """Initialize the Replicate adapter."""
        super().__init__(timeout=timeout, transport=transport)
        self.base_url = (base_url or settings.REPLICATE_BASE_URL).rstrip("/")

    def _headers(self, api_key: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer {api_key}"}

    def _upload_staged(self, data_uri: str, api_key: str) -> str:
        mime_type, content = decode_data_uri(data_uri)
        file_name = f"file-{int(time.time() * 1000)}.{file_extension(mime_type) or 'bin'}"

        with self._client() as client:
            response = client.post(
                f"{self.base_url}/files",
                headers=self._headers(api_key),
                files={"content": (file_name, content, mime_type)},
            )
            response.raise_for_status()

        logger.info(f"Staged {len(content)} bytes to Replicate files as {file_name}")
        return response.json()["urls"]["get"]

    def start(
        self,
        model_identifier: str,
        inputs: Dict[str, Any],
        api_key: str,
        version: Optional[str] = None,
    ) -> JobHandle:
        """Create a prediction. Without a version the model's latest deployment is used."""
        staged = self.stage_inputs(inputs, api_key)

        if version:
            url = f"{self.base_url}/predictions"
            payload = {"version": version, "input": staged}
        else:
            url = f"{self.base_url}/models/{model_identifier}/predictions"
            payload = {"input": staged}

        prediction = self._post_json(url, api_key, payload, "Replicate API")

        if not prediction.get("id"):
            raise ProviderUnavailable("No prediction id found in response")

        return JobHandle(correlation_id=prediction["id"], initial_status=prediction.get("status") or "starting")

    def poll(self, model_identifier: str, correlation_id: str, api_key: str) -> PollStatus:
        """Check prediction status."""
        prediction = self._get_json(f"{self.base_url}/predictions/{correlation_id}", api_key, "Replicate API")
        status = prediction.get("status") or "unknown"
        logs = prediction.get("logs")

        return PollStatus(
            completed=status in TERMINAL_STATUSES,
            status=status,
            progress_hint=progress_from_logs(logs),
            logs=logs,
        )

    def fetch_result(
        self,
        model_identifier: str,
        correlation_id: str,
        api_key: str,
        elapsed: float,
    ) -> FetchResult:
        """Read the finished prediction and normalize its output."""
        prediction = self._get_json(f"{self.base_url}/predictions/{correlation_id}", api_key, "Replicate API")
        status = prediction.get("status")

        metrics = prediction.get("metrics") or {}
        processing_time = metrics.get("predict_time") or elapsed

        if status == "canceled":
            return FetchResult(success=False, error="Workflow was canceled", processing_time=processing_time)
        if status != "succeeded":
            return FetchResult(
                success=False,
                error=prediction.get("error") or "Workflow failed",
                processing_time=processing_time,
            )

        output = prediction.get("output")

        if isinstance(output, list) and output and all(isinstance(v, str) for v in output):
            if not all(is_http_url(v) for v in output):
                # Token streams come back as a list of text fragments
                return FetchResult(
                    success=True, output_ref="".join(output), media_type="text", processing_time=processing_time
                )
            return FetchResult(
                success=True,
                output_ref=list(output),
                media_type=infer_type_from_url(output[0]),
                processing_time=processing_time,
            )

        url = extract_output_url(output)
        if url and is_http_url(url):
            return FetchResult(
                success=True, output_ref=url, media_type=infer_type_from_url(url), processing_time=processing_time
            )

        return FetchResult(success=True, output_ref=output, media_type="text", processing_time=processing_time)

    def cancel(self, model_identifier: str, correlation_id: str, api_key: str) -> bool:
        with self._client() as client:
            response = client.post(
                f"{self.base_url}/predictions/{correlation_id}/cancel",
                headers=self._headers(api_key),
            )
        return response.is_success
