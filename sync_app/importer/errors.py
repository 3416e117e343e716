"""Exceptions raised by the importer core."""

from __future__ import annotations


class ImporterError(Exception):
    """Base exception for importer failures."""


class ConfigurationError(ImporterError):
    """Raised when a source, provider, or row modifier is configured incorrectly."""


class NotFoundError(ImporterError):
    """Raised when a required record (source, run) does not exist."""


class ProviderError(ImporterError):
    """Raised when a provider cannot read its external data."""
