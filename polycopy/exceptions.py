"""Custom exceptions for the polycopy copy-trading engine."""


class CopyTradeError(Exception):
    """Base exception for all polycopy errors."""


class ConfigurationError(CopyTradeError):
    """Missing or invalid configuration. Fatal at startup."""


class NetworkError(CopyTradeError):
    """HTTP or RPC call failed after exhausting its retries."""


class ExecutionError(CopyTradeError):
    """Order book lookup or order submission failed."""


class InsufficientFundsError(ExecutionError):
    """Venue rejected an order for lack of balance or allowance."""


class DatabaseError(CopyTradeError):
    """Storage query or update failed."""
