# consolidator/core/client.py

import asyncio
import base64
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence, Tuple, Union

import httpx
from solders.hash import Hash
from solders.pubkey import Pubkey
from solders.rpc.errors import SendTransactionPreflightFailureMessage
from solders.signature import Signature
from solders.transaction import VersionedTransaction
from solders.transaction_status import TransactionConfirmationStatus

from solana.exceptions import SolanaRpcException
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment, Confirmed
from solana.rpc.core import RPCException
from solana.rpc.types import TokenAccountOpts, TxOpts

from consolidator.core.exceptions import (
    ConsolidatorException,
    NetworkError,
    RateLimitedError,
    SimulationError,
)
from consolidator.core.pubkeys import SolanaProgramAddresses
from consolidator.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30
MAX_ACCOUNTS_PER_REQUEST = 100
# JSON-RPC codes some providers use for throttling
RATE_LIMIT_RPC_CODES = {429, -32429, -32005}

PubkeyLike = Union[Pubkey, str]


@dataclass
class AccountState:
    address: str
    lamports: int
    owner: str
    data: bytes = b""


@dataclass
class ParsedTokenAccount:
    address: str
    mint: str
    owner: str
    amount: int
    decimals: int


@dataclass
class SignatureStatus:
    confirmation_status: Optional[str]  # "processed" | "confirmed" | "finalized"
    err: Any = None
    slot: Optional[int] = None


@dataclass
class SimulatedTransaction:
    err: Any = None
    logs: List[str] = field(default_factory=list)
    # Projected post-execution state of the requested addresses (None = not returned)
    accounts: Optional[List[Optional[AccountState]]] = None
    units_consumed: Optional[int] = None


def _confirmation_name(status: Optional[TransactionConfirmationStatus]) -> Optional[str]:
    if status is None:
        return None
    if status == TransactionConfirmationStatus.Finalized:
        return "finalized"
    if status == TransactionConfirmationStatus.Confirmed:
        return "confirmed"
    return "processed"


def _to_pubkey(value: PubkeyLike) -> Pubkey:
    return value if isinstance(value, Pubkey) else Pubkey.from_string(str(value))


def _rpc_error_code(error: Any) -> Optional[int]:
    if isinstance(error, dict):
        return error.get("code")
    return getattr(error, "code", None)


def classify_rpc_error(exc: BaseException, operation: str = "rpc") -> ConsolidatorException:
    """
    Maps a transport or RPC exception onto the application taxonomy.
    HTTP 429 and throttling RPC codes become RateLimitedError, everything else
    transport-level becomes NetworkError.
    """
    if isinstance(exc, ConsolidatorException):
        return exc

    cause: BaseException = exc
    if isinstance(exc, SolanaRpcException):
        if exc.__cause__ is not None:
            cause = exc.__cause__
        elif exc.args and isinstance(exc.args[0], BaseException):
            cause = exc.args[0]

    if isinstance(cause, httpx.HTTPStatusError):
        status = cause.response.status_code
        if status == 429:
            return RateLimitedError(f"{operation}: rate limited (HTTP 429)")
        return NetworkError(f"{operation}: HTTP {status}")
    if isinstance(cause, (httpx.TransportError, asyncio.TimeoutError)):
        return NetworkError(f"{operation}: {type(cause).__name__} - {cause}")
    if isinstance(exc, RPCException):
        error = exc.args[0] if exc.args else None
        if _rpc_error_code(error) in RATE_LIMIT_RPC_CODES:
            return RateLimitedError(f"{operation}: rate limited ({error})")
        return NetworkError(f"{operation}: RPC error {error}")
    return NetworkError(f"{operation}: {type(exc).__name__} - {exc}")


def describe_transaction_error(err: Any) -> Tuple[str, Optional[int]]:
    """
    Human readable form of a ledger transaction error plus the failing
    instruction index when the error is an instruction error.
    Accepts both the JSON form ({"InstructionError": [2, {"Custom": 1}]})
    and solders error objects.
    """
    if err is None:
        return "", None
    if isinstance(err, dict) and "InstructionError" in err:
        index, detail = err["InstructionError"]
        return f"Instruction {index} failed: {_describe_detail(detail)}", int(index)
    index = getattr(err, "index", None)
    if isinstance(index, int):
        return f"Instruction {index} failed: {_describe_detail(getattr(err, 'err', err))}", index
    if isinstance(err, dict):
        return ", ".join(f"{k}: {v}" for k, v in err.items()), None
    return str(err), None


def _describe_detail(detail: Any) -> str:
    if isinstance(detail, dict):
        return ", ".join(f"{k}({v})" for k, v in detail.items())
    return str(detail)


def _account_from_json(address: str, raw: Optional[dict]) -> Optional[AccountState]:
    if raw is None:
        return None
    data_field = raw.get("data")
    data = b""
    if isinstance(data_field, list) and data_field:
        data = base64.b64decode(data_field[0])
    return AccountState(
        address=address,
        lamports=int(raw.get("lamports", 0)),
        owner=str(raw.get("owner", "")),
        data=data,
    )


class SolanaClient:
    """
    Connection capability used by every component. Wraps solana-py's
    AsyncClient; the dry-run call goes through httpx so the projected account
    state can be requested alongside it.
    """

    def __init__(
        self,
        rpc_endpoint: str,
        commitment: Commitment = Confirmed,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.rpc_endpoint = rpc_endpoint
        self.async_client = AsyncClient(
            rpc_endpoint, commitment=commitment, timeout=timeout_seconds
        )
        self.commitment = commitment
        self.timeout_seconds = timeout_seconds
        self._http = http_client
        self._owns_http = http_client is None
        logger.info(f"SolanaClient initialized: {rpc_endpoint} @ {commitment}")

    async def __aenter__(self) -> "SolanaClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        try:
            await self.async_client.close()
            if self._http is not None and self._owns_http:
                await self._http.aclose()
            logger.debug(f"SolanaClient connection closed: {self.rpc_endpoint}")
        except Exception as e:
            logger.warning(f"Error closing SolanaClient: {e}")

    def _http_client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=self.timeout_seconds)
        return self._http

    async def get_slot(self) -> int:
        try:
            resp = await self.async_client.get_slot(self.commitment)
            return resp.value
        except Exception as e:
            raise classify_rpc_error(e, "get_slot") from e

    async def get_balance(self, address: PubkeyLike) -> int:
        """Native balance in lamports."""
        try:
            resp = await self.async_client.get_balance(_to_pubkey(address), self.commitment)
            return resp.value
        except Exception as e:
            logger.warning(f"get_balance {address} failed: {e}")
            raise classify_rpc_error(e, "get_balance") from e

    async def get_token_accounts_by_owner(self, owner: PubkeyLike) -> List[ParsedTokenAccount]:
        """All token-program accounts owned by ``owner``, json-parsed."""
        try:
            resp = await self.async_client.get_token_accounts_by_owner_json_parsed(
                _to_pubkey(owner),
                TokenAccountOpts(program_id=SolanaProgramAddresses.TOKEN_PROGRAM_ID),
                self.commitment,
            )
        except Exception as e:
            logger.warning(f"get_token_accounts_by_owner {owner} failed: {e}")
            raise classify_rpc_error(e, "get_token_accounts_by_owner") from e

        accounts: List[ParsedTokenAccount] = []
        for keyed in resp.value:
            parsed = keyed.account.data.parsed
            info = parsed.get("info", {}) if isinstance(parsed, dict) else {}
            token_amount = info.get("tokenAmount", {})
            try:
                accounts.append(
                    ParsedTokenAccount(
                        address=str(keyed.pubkey),
                        mint=str(info["mint"]),
                        owner=str(info.get("owner", owner)),
                        amount=int(token_amount["amount"]),
                        decimals=int(token_amount["decimals"]),
                    )
                )
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping unparseable token account {keyed.pubkey}: {e}")
        return accounts

    async def get_account_info(self, address: PubkeyLike) -> Optional[AccountState]:
        try:
            resp = await self.async_client.get_account_info(
                _to_pubkey(address), self.commitment, encoding="base64"
            )
        except Exception as e:
            logger.warning(f"get_account_info {address} failed: {e}")
            raise classify_rpc_error(e, "get_account_info") from e
        account = resp.value
        if account is None:
            return None
        return AccountState(
            address=str(address),
            lamports=account.lamports,
            owner=str(account.owner),
            data=bytes(account.data),
        )

    async def get_multiple_accounts(
        self, addresses: Sequence[PubkeyLike]
    ) -> List[Optional[AccountState]]:
        """Account states in request order; None for accounts that do not exist."""
        chunks = [
            list(addresses[i:i + MAX_ACCOUNTS_PER_REQUEST])
            for i in range(0, len(addresses), MAX_ACCOUNTS_PER_REQUEST)
        ]
        try:
            responses = await asyncio.gather(
                *[
                    self.async_client.get_multiple_accounts(
                        [_to_pubkey(a) for a in chunk], self.commitment, encoding="base64"
                    )
                    for chunk in chunks
                ]
            )
        except Exception as e:
            logger.warning(f"get_multiple_accounts ({len(addresses)}) failed: {e}")
            raise classify_rpc_error(e, "get_multiple_accounts") from e

        states: List[Optional[AccountState]] = []
        for chunk, resp in zip(chunks, responses):
            for address, account in zip(chunk, resp.value):
                if account is None:
                    states.append(None)
                else:
                    states.append(
                        AccountState(
                            address=str(address),
                            lamports=account.lamports,
                            owner=str(account.owner),
                            data=bytes(account.data),
                        )
                    )
        return states

    async def get_latest_blockhash(self) -> Hash:
        try:
            resp = await self.async_client.get_latest_blockhash(self.commitment)
            return resp.value.blockhash
        except Exception as e:
            logger.warning(f"get_latest_blockhash failed: {e}")
            raise classify_rpc_error(e, "get_latest_blockhash") from e

    async def simulate_transaction(
        self,
        transaction: VersionedTransaction,
        account_addresses: Sequence[str] = (),
    ) -> SimulatedTransaction:
        """
        Dry-runs ``transaction`` without signature verification, letting the
        node substitute a recent blockhash, and asks for the projected state
        of ``account_addresses``.
        """
        config: dict = {
            "encoding": "base64",
            "sigVerify": False,
            "replaceRecentBlockhash": True,
            "commitment": str(self.commitment),
        }
        if account_addresses:
            config["accounts"] = {"encoding": "base64", "addresses": list(account_addresses)}
        payload = {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "simulateTransaction",
            "params": [base64.b64encode(bytes(transaction)).decode("ascii"), config],
        }
        try:
            response = await self._http_client().post(self.rpc_endpoint, json=payload)
            response.raise_for_status()
            body = response.json()
        except Exception as e:
            logger.warning(f"simulate_transaction failed: {e}")
            raise classify_rpc_error(e, "simulate_transaction") from e

        if "error" in body:
            error = body["error"]
            if _rpc_error_code(error) in RATE_LIMIT_RPC_CODES:
                raise RateLimitedError(f"simulate_transaction: rate limited ({error})")
            raise SimulationError(f"Simulation request rejected: {error.get('message', error)}")

        value = body.get("result", {}).get("value", {}) or {}
        raw_accounts = value.get("accounts")
        accounts = None
        if raw_accounts is not None:
            accounts = [
                _account_from_json(address, raw)
                for address, raw in zip(account_addresses, raw_accounts)
            ]
        return SimulatedTransaction(
            err=value.get("err"),
            logs=value.get("logs") or [],
            accounts=accounts,
            units_consumed=value.get("unitsConsumed"),
        )

    async def send_raw_transaction(
        self, transaction: VersionedTransaction, skip_preflight: bool = False
    ) -> str:
        """Broadcasts a signed transaction and returns its signature string."""
        opts = TxOpts(
            skip_preflight=skip_preflight,
            preflight_commitment=self.commitment,
            max_retries=0,  # retries are handled by the caller
        )
        try:
            resp = await self.async_client.send_raw_transaction(bytes(transaction), opts=opts)
            return str(resp.value)
        except RPCException as e:
            error = e.args[0] if e.args else None
            if isinstance(error, SendTransactionPreflightFailureMessage):
                sim_err = getattr(error.data, "err", None)
                message, index = describe_transaction_error(sim_err)
                raise SimulationError(
                    f"Preflight check failed: {message or error.message}", instruction_index=index
                ) from e
            raise classify_rpc_error(e, "send_raw_transaction") from e
        except Exception as e:
            raise classify_rpc_error(e, "send_raw_transaction") from e

    async def get_signature_status(self, signature: str) -> Optional[SignatureStatus]:
        """None while the cluster has not seen the signature yet."""
        try:
            resp = await self.async_client.get_signature_statuses(
                [Signature.from_string(signature)]
            )
        except Exception as e:
            raise classify_rpc_error(e, "get_signature_status") from e
        status = resp.value[0] if resp.value else None
        if status is None:
            return None
        return SignatureStatus(
            confirmation_status=_confirmation_name(status.confirmation_status),
            err=status.err,
            slot=status.slot,
        )
