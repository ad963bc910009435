"""
Exception types raised by the profit tracker.
"""


class ProfitTrackerError(Exception):
    """Base class for profit tracker errors."""


class ValidationError(ProfitTrackerError):
    """Malformed user input (date, address). Raised before any network call."""


class ResolutionError(ProfitTrackerError):
    """A date or timestamp could not be mapped to a block. Fatal for the run."""


class FetchError(ProfitTrackerError):
    """A listing call failed after its retry."""


class EnrichmentError(ProfitTrackerError):
    """A per-item lookup (internal transfers, price, destination) failed."""


class EtherscanAPIError(ProfitTrackerError):
    """Etherscan answered with an error status or an unusable payload."""
