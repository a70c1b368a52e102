# consolidator/utils/validation.py

import re

from solders.pubkey import Pubkey

from consolidator.core.exceptions import InvalidAddressError

BASE58_ADDRESS_RE = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{43,44}$")


def is_valid_address(value) -> bool:
    """Base-58 string of 43 or 44 characters that decodes to a 32-byte key."""
    if not isinstance(value, str) or BASE58_ADDRESS_RE.fullmatch(value) is None:
        return False
    try:
        Pubkey.from_string(value)
    except ValueError:
        return False
    return True


def require_address(value, role: str = "address") -> str:
    if not is_valid_address(value):
        raise InvalidAddressError(str(value), role)
    return value


def short_address(value: str, keep: int = 6) -> str:
    if len(value) <= keep * 2:
        return value
    return f"{value[:keep]}...{value[-keep:]}"
