"""Error taxonomy for cashflow runs."""


class CashflowError(Exception):
    """Base class for every error raised by the cashflow package."""


class ConfigurationError(CashflowError):
    """Participant setup or runtime configuration is unusable."""


class InputError(CashflowError):
    """A debt record or debt count could not be accepted."""


class InvariantViolation(CashflowError):
    """Internal state broke a guarantee the planner relies on.

    Never expected in correct operation; seeing one means a bug, not bad input.
    """
