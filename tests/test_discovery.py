import pytest

from conftest import ACCOUNT_A, ACCOUNT_B, ACCOUNT_C, BONK_MINT, OWNER, USDC_MINT
from consolidator.consolidation.base import TokenMetadata
from consolidator.core.client import ParsedTokenAccount
from consolidator.core.exceptions import InvalidAddressError, NetworkError
from consolidator.discovery.accounts import AccountDiscovery, partition


def seed(fake_connection):
    fake_connection.balances[OWNER] = 1_500_000_000
    fake_connection.token_accounts[OWNER] = [
        ParsedTokenAccount(address=ACCOUNT_B, mint=USDC_MINT, owner=OWNER, amount=0, decimals=6),
        ParsedTokenAccount(address=ACCOUNT_A, mint=USDC_MINT, owner=OWNER, amount=500000, decimals=6),
        ParsedTokenAccount(address=ACCOUNT_C, mint=BONK_MINT, owner=OWNER, amount=12345, decimals=5),
    ]


class StubResolver:
    def __init__(self):
        self.requested = []

    async def resolve(self, mint):
        self.requested.append(mint)
        if mint == USDC_MINT:
            return TokenMetadata(mint=mint, name="USD Coin", symbol="USDC")
        return None


@pytest.mark.asyncio
async def test_discover_builds_token_accounts(fake_connection):
    seed(fake_connection)
    accounts = await AccountDiscovery(fake_connection).discover(OWNER)

    by_address = {a.address: a for a in accounts}
    assert set(by_address) == {ACCOUNT_A, ACCOUNT_B, ACCOUNT_C}
    assert by_address[ACCOUNT_A].ui_amount == "0.5"
    assert by_address[ACCOUNT_C].ui_amount == "0.12345"
    assert by_address[ACCOUNT_B].is_empty
    assert by_address[ACCOUNT_A].has_balance
    assert all(a.owner == OWNER for a in accounts)


@pytest.mark.asyncio
async def test_discover_twice_is_identical(fake_connection):
    seed(fake_connection)
    discovery = AccountDiscovery(fake_connection)
    assert await discovery.discover(OWNER) == await discovery.discover(OWNER)


@pytest.mark.asyncio
async def test_invalid_owner_makes_no_call(fake_connection):
    with pytest.raises(InvalidAddressError):
        await AccountDiscovery(fake_connection).discover("0xdeadbeef")
    with pytest.raises(InvalidAddressError):
        await AccountDiscovery(fake_connection).discover("z" * 44)
    assert fake_connection.calls == []


@pytest.mark.asyncio
async def test_metadata_is_resolved_once_per_mint(fake_connection):
    seed(fake_connection)
    resolver = StubResolver()
    accounts = await AccountDiscovery(fake_connection, resolver).discover(OWNER)

    assert sorted(resolver.requested) == sorted([USDC_MINT, BONK_MINT])
    by_address = {a.address: a for a in accounts}
    assert by_address[ACCOUNT_A].display_symbol == "USDC"
    assert by_address[ACCOUNT_B].metadata.name == "USD Coin"
    assert by_address[ACCOUNT_C].metadata is None
    assert by_address[ACCOUNT_C].display_symbol == "???"


@pytest.mark.asyncio
async def test_scan_returns_complete_entry(fake_connection):
    seed(fake_connection)
    entry = await AccountDiscovery(fake_connection).scan(OWNER)

    assert entry.owner == OWNER
    assert entry.sol_lamports == 1_500_000_000
    assert len(entry.tokens) == 3
    assert entry.is_loading is False
    assert entry.last_refreshed is not None
    assert entry.find(ACCOUNT_A).raw_amount == 500000


@pytest.mark.asyncio
async def test_network_errors_propagate(fake_connection):
    async def failing(owner):
        raise NetworkError("get_token_accounts_by_owner: HTTP 503")

    fake_connection.get_token_accounts_by_owner = failing
    with pytest.raises(NetworkError):
        await AccountDiscovery(fake_connection).discover(OWNER)


@pytest.mark.asyncio
async def test_partition(fake_connection):
    seed(fake_connection)
    accounts = await AccountDiscovery(fake_connection).discover(OWNER)
    with_balance, empty = partition(accounts)
    assert {a.address for a in with_balance} == {ACCOUNT_A, ACCOUNT_C}
    assert [a.address for a in empty] == [ACCOUNT_B]
