"""Error taxonomy shared by discovery, extraction, monitoring and persistence."""

from __future__ import annotations


class ClausewatchError(Exception):
    pass


class ConfigurationError(ClausewatchError):
    """A required setting (API key, secret) is missing."""


class ValidationError(ClausewatchError, ValueError):
    """User supplied input was rejected. Maps to a 4xx response."""


class InvalidInputUrl(ValidationError):
    def __init__(self, message: str, hostname: str = "") -> None:
        super().__init__(message)
        self.hostname = hostname


class DiscoveryError(ClausewatchError):
    """Legal document discovery could not produce usable content for a vendor."""

    def __init__(self, message: str, hostname: str = "") -> None:
        super().__init__(message)
        self.hostname = hostname


class NoCandidatesDiscovered(DiscoveryError):
    pass


class NoCanonicalPagesResolved(DiscoveryError):
    pass


class AllFetchesFailed(DiscoveryError):
    pass


class FetchError(ClausewatchError):
    """A single page could not be fetched. Recorded per URL, never fatal on its own."""

    def __init__(self, message: str, url: str = "") -> None:
        super().__init__(message)
        self.url = url


class ExtractionError(ClausewatchError):
    """The structured-extraction service could not be reached or answered with an error."""


class ExtractionValidationError(ClausewatchError):
    """A scorecard (fresh or stored) does not match the Scorecard shape."""


class PersistenceError(ClausewatchError):
    pass


class DuplicateVendorError(PersistenceError):
    pass
