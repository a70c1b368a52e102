# consolidator/state/__init__.py

from .balance_cache import BalanceCache, format_last_checked
from .preferences import DestinationPreference

__all__ = [
    "BalanceCache",
    "format_last_checked",
    "DestinationPreference",
]
