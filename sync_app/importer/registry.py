"""
Provider registry.

Import sources name their provider through ``provider_class``; the registry
maps those names to provider implementations so configuration can be
validated before any data is fetched.
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
from typing import Iterable, Mapping, Sequence

from .errors import ConfigurationError
from .providers import CSVFileProvider, ImportProvider, JSONFileProvider


@dataclass(frozen=True)
class ProviderDescriptor:
    """Metadata describing an import provider."""

    name: str
    title: str
    factory: type[ImportProvider]
    summary: str | None = None


def get_provider_registry() -> Mapping[str, ProviderDescriptor]:
    """Return the registry of supported providers."""
    return OrderedDict(
        (
            (
                "csv",
                ProviderDescriptor(
                    name="csv",
                    title="CSV File",
                    factory=CSVFileProvider,
                    summary="Read rows from a delimited file with a header line.",
                ),
            ),
            (
                "json",
                ProviderDescriptor(
                    name="json",
                    title="JSON File",
                    factory=JSONFileProvider,
                    summary="Read rows from a JSON document.",
                ),
            ),
        )
    )


def resolve_providers(
    configured: Sequence[str],
    registry: Mapping[str, ProviderDescriptor] | None = None,
) -> Iterable[ProviderDescriptor]:
    """
    Map configured provider names to registry descriptors, raising on unknowns.
    """
    registry = registry or get_provider_registry()
    unknown = sorted({provider for provider in configured if provider not in registry})
    if unknown:
        raise ValueError(
            "Unknown import providers configured: "
            + ", ".join(unknown)
            + ". Update configuration or register these providers first."
        )
    return tuple(registry[provider] for provider in configured)


def create_provider(
    provider_class: str,
    settings: Mapping[str, object] | None = None,
    registry: Mapping[str, ProviderDescriptor] | None = None,
) -> ImportProvider:
    """Instantiate the provider registered as ``provider_class``."""
    registry = registry or get_provider_registry()
    descriptor = registry.get((provider_class or "").strip().lower())
    if descriptor is None:
        raise ConfigurationError(
            f"Unknown import provider '{provider_class}'. Known providers: " + ", ".join(registry)
        )
    return descriptor.factory(settings)
