import pytest

from conftest import OWNER, USDC_MINT
from consolidator.core.exceptions import InvalidAddressError
from consolidator.utils.validation import is_valid_address, require_address, short_address


def test_valid_addresses():
    assert is_valid_address(OWNER)
    assert is_valid_address(USDC_MINT)


@pytest.mark.parametrize(
    "value",
    [
        "",
        "short",
        OWNER + "1",  # 45 chars
        OWNER[:-1].replace("W", "0"),  # '0' is not base-58
        "O" * 44,  # 'O' is not base-58
        "l" * 44,  # 'l' is not base-58
        "z" * 44,  # right shape, decodes to more than 32 bytes
        None,
        12345,
    ],
)
def test_invalid_addresses(value):
    assert not is_valid_address(value)


def test_require_address_names_the_role():
    with pytest.raises(InvalidAddressError) as exc_info:
        require_address("not-an-address", "destination address")
    assert exc_info.value.role == "destination address"
    assert "destination address" in str(exc_info.value)


def test_short_address():
    assert short_address(OWNER) == "9WzDXw...YtAWWM"
    assert short_address("abc") == "abc"
