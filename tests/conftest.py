import asyncio
from typing import Dict, List, Optional

import pytest
from solders.hash import Hash
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import VersionedTransaction

from consolidator.consolidation.base import TokenAccount
from consolidator.core.client import (
    AccountState,
    ParsedTokenAccount,
    SignatureStatus,
    SimulatedTransaction,
)
from consolidator.core.pubkeys import SolanaProgramAddresses
from consolidator.core.wallet import Signer

# Real mainnet addresses, used only as well-formed base-58 keys
OWNER = "9WzDXwBbmkg8ZTbNMqUxvQRAyrZzDsGYdLVL9zYtAWWM"
DESTINATION = "JUPyiwrYJFskUPiHa7hkeR8VUtAeFoSYbKedZNsDvCN"
USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
BONK_MINT = "DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263"
RAY_MINT = "4k3Dyjzvzp8eMZWUXbBCjEvwSkkk59S5iCNLY3QrkX6R"
ACCOUNT_A = "Es9vMFrzaCERmJfrF4H2FYD4KCoNkY3V8B8UVbFcMJyE"
ACCOUNT_B = "mSoLzYCxHdYgdzU16g5QSh3i5K3z3KZK7ytfqcJm7So"
ACCOUNT_C = "7vfCXTUXx5WJV5JADk17DUJ4ksgau7utNKj4b963voxs"
ACCOUNT_D = "orcaEKTdK7LKz57vaAYr9QeNsVEPfiu6QeMU1kektZE"
ACCOUNT_E = "SRMuApVNdxXokk5GT7XD5cUUgXMBCoAz2LHeuAoKWRt"
ACCOUNT_F = "3NZ9JMVBmGAqocybic2c7LQCJScmgsAZ6vQqTDzcqmJh"

FAKE_SIGNATURE = "5VERv8NMvzbJMEkV8xnrLkEaWRtSz9CosKDYjCJjBRnbJLgp8uirBgmQpjKhoR4tjF3ZpRzrFmBV6UjKdiSZkQUW"
SYSTEM_OWNER = str(SolanaProgramAddresses.SYSTEM_PROGRAM_ID)
TOKEN_OWNER = str(SolanaProgramAddresses.TOKEN_PROGRAM_ID)


def token_account_data(mint: str, owner: str, amount: int) -> bytes:
    data = bytes(Pubkey.from_string(mint)) + bytes(Pubkey.from_string(owner)) + amount.to_bytes(8, "little")
    return data.ljust(165, b"\x00")


def make_token(address: str, mint: str, raw_amount: int, decimals: int = 6) -> TokenAccount:
    return TokenAccount(owner=OWNER, address=address, mint=mint, raw_amount=raw_amount, decimals=decimals)


class FakeConnection:
    """In-memory stand-in for SolanaClient. Methods return plain values."""

    def __init__(self):
        self.rpc_endpoint = "http://fake"
        self.balances: Dict[str, int] = {}
        self.token_accounts: Dict[str, List[ParsedTokenAccount]] = {}
        self.accounts: Dict[str, AccountState] = {}
        self.statuses: List[Optional[SignatureStatus]] = [SignatureStatus(confirmation_status="confirmed")]
        self.simulation = SimulatedTransaction()
        self.simulation_error: Optional[Exception] = None
        self.send_errors: List[Exception] = []
        self.sent: List[VersionedTransaction] = []
        self.calls: List[tuple] = []
        self.closed = False

    async def get_slot(self) -> int:
        self.calls.append(("get_slot",))
        return 1

    async def get_balance(self, address) -> int:
        self.calls.append(("get_balance", str(address)))
        return self.balances.get(str(address), 0)

    async def get_token_accounts_by_owner(self, owner) -> List[ParsedTokenAccount]:
        self.calls.append(("get_token_accounts_by_owner", str(owner)))
        return list(self.token_accounts.get(str(owner), []))

    async def get_account_info(self, address) -> Optional[AccountState]:
        self.calls.append(("get_account_info", str(address)))
        return self.accounts.get(str(address))

    async def get_multiple_accounts(self, addresses) -> List[Optional[AccountState]]:
        self.calls.append(("get_multiple_accounts", tuple(str(a) for a in addresses)))
        return [self.accounts.get(str(a)) for a in addresses]

    async def get_latest_blockhash(self) -> Hash:
        self.calls.append(("get_latest_blockhash",))
        return Hash.new_unique()

    async def simulate_transaction(self, transaction, account_addresses=()) -> SimulatedTransaction:
        self.calls.append(("simulate_transaction", tuple(account_addresses)))
        if self.simulation_error is not None:
            raise self.simulation_error
        return self.simulation

    async def send_raw_transaction(self, transaction, skip_preflight: bool = False) -> str:
        self.calls.append(("send_raw_transaction",))
        if self.send_errors:
            raise self.send_errors.pop(0)
        self.sent.append(transaction)
        return FAKE_SIGNATURE

    async def get_signature_status(self, signature: str) -> Optional[SignatureStatus]:
        self.calls.append(("get_signature_status", signature))
        if len(self.statuses) > 1:
            return self.statuses.pop(0)
        return self.statuses[0] if self.statuses else None

    async def close(self) -> None:
        self.closed = True

    def count(self, method: str) -> int:
        return sum(1 for call in self.calls if call[0] == method)


class FakeSigner(Signer):
    """Signs nothing; fills the signature slots with placeholders."""

    def __init__(self, address: str = OWNER):
        self._pubkey = Pubkey.from_string(address)
        self.signed: List[MessageV0] = []

    @property
    def pubkey(self) -> Pubkey:
        return self._pubkey

    async def sign_transaction(self, message: MessageV0) -> VersionedTransaction:
        self.signed.append(message)
        placeholders = [Signature.default()] * message.header.num_required_signatures
        return VersionedTransaction.populate(message, placeholders)


@pytest.fixture
def fake_connection() -> FakeConnection:
    return FakeConnection()


@pytest.fixture
def fake_signer() -> FakeSigner:
    return FakeSigner()
