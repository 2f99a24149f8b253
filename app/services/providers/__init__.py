"""Provider adapters."""

from typing import Dict, Type

from app.config import settings
from app.services.providers.base import ProviderAdapter
from app.services.providers.fal import FalAdapter
from app.services.providers.replicate import ReplicateAdapter

ADAPTERS: Dict[str, Type[ProviderAdapter]] = {
    "fal": FalAdapter,
    "replicate": ReplicateAdapter,
}


def get_adapter(provider: str) -> ProviderAdapter:
    """Build the adapter for a provider name."""
    adapter_class = ADAPTERS.get(provider)
    if not adapter_class:
        raise ValueError(f"Unknown provider: {provider}")
    return adapter_class()


def api_key_for(provider: str) -> str:
    """Platform credentials for a provider."""
    if provider == "fal":
        return settings.FAL_API_KEY
    if provider == "replicate":
        return settings.REPLICATE_API_TOKEN
    raise ValueError(f"Unknown provider: {provider}")


__all__ = ["ADAPTERS", "FalAdapter", "ProviderAdapter", "ReplicateAdapter", "api_key_for", "get_adapter"]
