"""Exception taxonomy for the projection-and-cache engine."""

from __future__ import annotations


class EnergyTrendsError(Exception):
    """Base class for every error raised inside the package."""


class ProviderError(EnergyTrendsError):
    """The health-data provider could not answer a query."""


class ProviderUnavailableError(ProviderError):
    """Transient provider failure (device locked, store inaccessible, network)."""


class AuthorizationDeniedError(ProviderError):
    """The user has not granted read access to the energy data."""


class CacheError(EnergyTrendsError):
    """A cache record could not be read or written."""


class CacheCorruptedError(CacheError):
    """A persisted record exists but cannot be decoded."""


class ContainerUnavailableError(CacheError):
    """The shared storage container is missing or misconfigured."""


class NotificationDeliveryError(EnergyTrendsError):
    """A goal-crossing notification could not be handed to its channel."""
