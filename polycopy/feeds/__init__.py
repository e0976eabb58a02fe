from .balance import UsdcBalanceReader
from .data_api import DataApiClient, parse_position

__all__ = [
    "DataApiClient",
    "UsdcBalanceReader",
    "parse_position",
]
