"""
ERRORS
======
Exception hierarchy for structural input problems.

Only structural problems (empty or malformed bars, invalid settings) are
raised. Numeric edge cases inside indicators, backtests and validation
windows are resolved locally with neutral values and never raise.
"""


class InputError(Exception):
    """Base class for input problems that must abort a run before it starts."""


class EmptyBarsError(InputError):
    """Raised when a bar sequence is empty."""

    def __init__(self, message: str = "No data provided for backtest"):
        super().__init__(message)


class InvalidBarsError(InputError):
    """Raised when bars are malformed (missing columns, unsorted, non-finite)."""


class InvalidSettingsError(InputError):
    """Raised when optimization settings are structurally invalid."""


class UnknownSignalError(InputError):
    """Raised when a signal identifier is not in the registry."""


class InvalidStrategyError(InputError):
    """Raised when a strategy payload cannot be turned into a StrategyDefinition."""
