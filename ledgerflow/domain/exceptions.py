"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class InvalidArgumentError(DomainException, ValueError):
    """Calculator received a non-positive principal, negative rate or bad installment count"""

    pass


class InvalidRateError(DomainException, ValueError):
    """Exchange rate is zero, negative or not a number"""

    pass


class RateUnavailableError(DomainException):
    """Exchange rate source or store could not provide a rate"""

    pass


class DistributionError(DomainException):
    """Base exception for transfer distribution mutations"""

    pass


class TransferEntryNotFoundError(DistributionError):
    """No transfer entry with the given id"""

    pass


class LastTransferEntryError(DistributionError):
    """A distribution must keep at least one entry"""

    pass


class NoCompatibleAccountsError(DistributionError):
    """No destination account shares the distribution currency"""

    pass
