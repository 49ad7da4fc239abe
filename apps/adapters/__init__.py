"""
Source adapters that turn external systems into SignalEvents.
"""

from typing import Any

from apps.adapters.alerting import AlertingAdapter
from apps.adapters.base import BaseSourceAdapter, ProbeContext, RawRecord
from apps.adapters.host import HostResourceAdapter
from apps.adapters.model_health import ModelHealthAdapter

__all__ = [
    "BaseSourceAdapter",
    "ProbeContext",
    "RawRecord",
    "AlertingAdapter",
    "ModelHealthAdapter",
    "HostResourceAdapter",
    "ADAPTER_REGISTRY",
    "build_adapter",
    "get_adapter",
    "list_adapters",
    "get_enabled_adapters",
]

# Registry of available adapter variants
ADAPTER_REGISTRY: dict[str, type[BaseSourceAdapter]] = {
    "alerting": AlertingAdapter,
    "model_health": ModelHealthAdapter,
    "host": HostResourceAdapter,
}


def _configured() -> dict[str, dict[str, Any]]:
    from django.conf import settings

    return getattr(settings, "SIGNAL_ADAPTERS", {}) or {}


def build_adapter(adapter_id: str, config: dict[str, Any]) -> BaseSourceAdapter:
    """
    Instantiate an adapter variant from its configuration mapping.

    Raises:
        ValueError: If the variant type is not registered.
    """
    options = dict(config)
    variant = options.pop("type", "")
    if variant not in ADAPTER_REGISTRY:
        raise ValueError(
            f"Unknown adapter type: {variant}. Available: {', '.join(ADAPTER_REGISTRY.keys())}"
        )
    return ADAPTER_REGISTRY[variant](adapter_id, **options)


def get_adapter(adapter_id: str) -> BaseSourceAdapter:
    """
    Get a configured adapter instance by ID.

    Args:
        adapter_id: Key in settings.SIGNAL_ADAPTERS (e.g. "alertmanager-prod").

    Returns:
        Adapter instance.

    Raises:
        ValueError: If the adapter ID is not configured.
    """
    configured = _configured()
    if adapter_id not in configured:
        raise ValueError(
            f"Unknown adapter: {adapter_id}. Available: {', '.join(configured.keys())}"
        )
    return build_adapter(adapter_id, configured[adapter_id])


def list_adapters() -> list[BaseSourceAdapter]:
    """All configured adapters, enabled or not."""
    return [build_adapter(adapter_id, config) for adapter_id, config in _configured().items()]


def get_enabled_adapters() -> list[BaseSourceAdapter]:
    return [adapter for adapter in list_adapters() if adapter.enabled]
