"""Exception taxonomy for the valuation engine and its collaborators.

None of these are allowed to abort a neighborhood batch: the pipeline catches them
per listing (or per neighborhood for snapshot failures) and degrades.
"""


class DealFinderError(Exception):
    """Base exception for deal finder errors."""
    pass


class OracleUnavailable(DealFinderError):
    """Raised when the market oracle fails (network, auth, parse) after retries."""
    pass


class InvalidEstimate(DealFinderError):
    """Raised when the oracle returns a missing, non-numeric or non-positive value."""
    pass


class NoComparables(DealFinderError):
    """Raised when the comparable pool is empty even at the fallback tier."""
    pass


class RegistryUnavailable(DealFinderError):
    """Raised when the building registry cannot be loaded."""
    pass


class IncompleteSnapshot(DealFinderError):
    """Raised when a listing page fails, so the snapshot cannot be trusted for vacates."""
    pass
