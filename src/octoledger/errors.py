"""Exception types raised by octoledger."""


class OctoledgerError(Exception):
    """Base exception for octoledger errors."""
    pass


class ConfigError(OctoledgerError):
    """Configuration is missing or invalid."""
    pass


class NoDataError(OctoledgerError):
    """The requested range has no stored data at all."""
    pass


class ReconstructionError(OctoledgerError):
    """Stored rows cannot be joined into a contiguous sequence."""
    pass


class OverlappingIntervalsError(ReconstructionError):
    """Stored rows overlap or arrive out of order."""
    pass


class TariffGapError(ReconstructionError):
    """Pricing data has a hole. Never filled."""
    pass


class AccountingError(OctoledgerError):
    """Consumption and tariff sequences are not jointly coverable."""
    pass


class TariffCoverageError(AccountingError):
    """The next tariff entry starts after the consumption interval."""
    pass


class TariffExhaustedError(AccountingError):
    """Consumption extends past the last tariff entry."""
    pass


class MisalignedIntervalsError(AccountingError):
    """A consumption interval straddles a tariff boundary."""
    pass


class OctopusAPIError(OctoledgerError):
    """Transport or HTTP failure talking to the Octopus API."""
    pass


class SyncError(OctoledgerError):
    """A remote fetch or store write failed for a series."""
    pass


class SyncCancelled(OctoledgerError):
    """The caller's deadline passed or cancellation was requested."""
    pass
