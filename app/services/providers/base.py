"""Provider adapter interface shared by Fal and Replicate."""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from app.config import settings
from app.errors import ProviderUnavailable
from app.schemas.provider import FetchResult, JobHandle, PollStatus
from app.services.providers.media import is_data_uri

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = (429, 500, 502, 503, 504)


def _is_transient(exc: BaseException) -> bool:
    """Transport errors and rate limit / server errors are worth retrying."""
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in RETRYABLE_STATUS_CODES
    return isinstance(exc, httpx.TransportError)


class ProviderAdapter(ABC):
    """
    Uniform interface to an inference backend.

    Every adapter starts a remote job, polls its status and retrieves the
    final output reference(s). Inline binary inputs (data URIs) are staged to
    the provider's own storage as part of ``start``.
    """

    name = ""

    def __init__(self, timeout: Optional[float] = None, transport: Optional[httpx.BaseTransport] = None):
        """Initialize the adapter."""
        self.timeout = timeout or settings.PROVIDER_HTTP_TIMEOUT
        self.transport = transport

    def _client(self) -> httpx.Client:
        return httpx.Client(timeout=self.timeout, transport=self.transport)

    @abstractmethod
    def _headers(self, api_key: str) -> Dict[str, str]:
        """Authorization headers for the provider API."""

    @abstractmethod
    def _upload_staged(self, data_uri: str, api_key: str) -> str:
        """Upload a data URI to provider storage and return its URL."""

    @abstractmethod
    def start(
        self,
        model_identifier: str,
        inputs: Dict[str, Any],
        api_key: str,
        version: Optional[str] = None,
    ) -> JobHandle:
        """
        Start a remote job.

        Raises:
            ProviderUnavailable: If staging fails or the API is unreachable or rejects the request
        """

    @abstractmethod
    def poll(self, model_identifier: str, correlation_id: str, api_key: str) -> PollStatus:
        """Check remote job status. Side-effect free."""

    @abstractmethod
    def fetch_result(
        self,
        model_identifier: str,
        correlation_id: str,
        api_key: str,
        elapsed: float,
    ) -> FetchResult:
        """Retrieve the final output of a finished remote job."""

    def cancel(self, model_identifier: str, correlation_id: str, api_key: str) -> bool:
        """Ask the provider to cancel a remote job. Returns False when unsupported."""
        return False

    def stage_inputs(self, inputs: Dict[str, Any], api_key: str) -> Dict[str, Any]:
        """Replace data URI inputs (top level or inside lists) with provider-hosted URLs."""
        staged = {}
        for key, value in inputs.items():
            try:
                if is_data_uri(value):
                    staged[key] = self._upload_staged(value, api_key)
                elif isinstance(value, list) and any(is_data_uri(v) for v in value):
                    staged[key] = [self._upload_staged(v, api_key) if is_data_uri(v) else v for v in value]
                else:
                    staged[key] = value
            except (httpx.HTTPError, ValueError, KeyError) as e:
                raise ProviderUnavailable(f"Failed to stage input '{key}' on {self.name}: {e}") from e

        return staged

    def _post_json(self, url: str, api_key: str, payload: Dict[str, Any], context: str) -> Dict[str, Any]:
        """POST once (never retried) and decode the JSON body."""
        try:
            with self._client() as client:
                response = client.post(url, headers=self._headers(api_key), json=payload)
        except httpx.HTTPError as e:
            raise ProviderUnavailable(f"{context} error: {e}") from e

        if response.is_error:
            raise ProviderUnavailable(f"{context} error ({response.status_code}): {response.text}")

        return response.json()

    @retry(
        retry=retry_if_exception(_is_transient),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True,
    )
    def _get(self, url: str, api_key: str) -> httpx.Response:
        """GET with retries on transient failures."""
        with self._client() as client:
            response = client.get(url, headers=self._headers(api_key))

        if response.status_code in RETRYABLE_STATUS_CODES:
            logger.warning(f"Retryable error {response.status_code} from {self.name}")
            raise httpx.HTTPStatusError(
                f"Retryable error: {response.status_code}",
                request=response.request,
                response=response,
            )

        return response

    def _get_response(self, url: str, api_key: str, context: str) -> httpx.Response:
        try:
            return self._get(url, api_key)
        except httpx.HTTPError as e:
            raise ProviderUnavailable(f"{context} error: {e}") from e

    def _get_json(self, url: str, api_key: str, context: str) -> Dict[str, Any]:
        response = self._get_response(url, api_key, context)
        if response.is_error:
            raise ProviderUnavailable(f"{context} error ({response.status_code}): {response.text}")
        return response.json()
