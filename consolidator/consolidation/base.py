# consolidator/consolidation/base.py
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Tuple

from consolidator.utils.amounts import format_ui_amount


@dataclass(frozen=True)
class TokenMetadata:
    mint: str
    name: Optional[str] = None
    symbol: Optional[str] = None
    image_url: Optional[str] = None
    candidate_image_urls: Tuple[str, ...] = ()


@dataclass(frozen=True)
class TokenAccount:
    owner: str
    address: str  # token account address, unique id
    mint: str
    raw_amount: int
    decimals: int
    metadata: Optional[TokenMetadata] = None

    @property
    def ui_amount(self) -> str:
        return format_ui_amount(self.raw_amount, self.decimals)

    @property
    def has_balance(self) -> bool:
        return self.raw_amount > 0

    @property
    def is_empty(self) -> bool:
        return self.raw_amount == 0

    @property
    def display_symbol(self) -> str:
        if self.metadata and self.metadata.symbol:
            return self.metadata.symbol
        return "???"


@dataclass(frozen=True)
class WalletEntry:
    owner: str
    sol_lamports: int = 0
    tokens: Tuple[TokenAccount, ...] = ()
    is_loading: bool = False
    last_refreshed: Optional[float] = None  # unix timestamp

    def find(self, token_account: str) -> Optional[TokenAccount]:
        for token in self.tokens:
            if token.address == token_account:
                return token
        return None


@dataclass
class SelectionSet:
    """Token-account addresses the user picked, grouped by action."""
    to_transfer: set = field(default_factory=set)
    to_close: set = field(default_factory=set)
    to_burn: set = field(default_factory=set)
    # Native balance selected for a SOL sweep (None = no sweep)
    sol_balance_lamports: Optional[int] = None

    def is_empty(self) -> bool:
        return not (self.to_transfer or self.to_close or self.to_burn) and self.sol_balance_lamports is None

    def total_accounts(self) -> int:
        return len(self.to_transfer) + len(self.to_close) + len(self.to_burn)


class InstructionKind(Enum):
    CREATE_ASSOCIATED_ACCOUNT = "CreateAssociatedAccount"
    TRANSFER_TOKEN = "TransferToken"
    BURN_TOKEN = "BurnToken"
    CLOSE_ACCOUNT = "CloseAccount"
    TRANSFER_SOL = "TransferSol"


@dataclass(frozen=True)
class PlannedInstruction:
    kind: InstructionKind
    source: str
    destination: str
    authority: str
    amount: int = 0  # smallest unit; lamports for TransferSol
    mint: Optional[str] = None

    def describe(self) -> str:
        if self.kind is InstructionKind.CREATE_ASSOCIATED_ACCOUNT:
            return f"Create {self.destination} for mint {self.mint}"
        if self.kind is InstructionKind.TRANSFER_TOKEN:
            return f"Transfer {self.amount} of {self.mint} from {self.source} to {self.destination}"
        if self.kind is InstructionKind.BURN_TOKEN:
            return f"Burn {self.amount} of {self.mint} in {self.source}"
        if self.kind is InstructionKind.CLOSE_ACCOUNT:
            return f"Close {self.source}, rent to {self.destination}"
        return f"Transfer {self.amount} lamports from {self.source} to {self.destination}"


@dataclass(frozen=True)
class BalanceSnapshot:
    address: str
    sol_lamports: int
    per_mint_amounts: Dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class BalanceDelta:
    address: str
    old_balance: int  # lamports
    new_balance: int
    change: int
    token_changes: Dict[str, int] = field(default_factory=dict)


@dataclass
class SimulationResult:
    success: bool
    balance_changes: List[BalanceDelta] = field(default_factory=list)
    error: Optional[str] = None
    failed_instruction_index: Optional[int] = None
    logs: List[str] = field(default_factory=list)
    units_consumed: Optional[int] = None


class SubmissionState(Enum):
    BUILDING = "Building"
    SIGNING = "Signing"
    BROADCASTING = "Broadcasting"
    PENDING = "Pending"
    CONFIRMED = "Confirmed"
    FAILED = "Failed"
    TIMED_OUT = "TimedOut"


TERMINAL_STATES: FrozenSet[SubmissionState] = frozenset(
    {SubmissionState.CONFIRMED, SubmissionState.FAILED, SubmissionState.TIMED_OUT}
)


@dataclass
class SubmissionAttempt:
    label: str = "Transaction"
    state: SubmissionState = SubmissionState.BUILDING
    signature: Optional[str] = None
    error_type: Optional[str] = None  # UserRejected, LedgerExecutionError, ConfirmationTimeout, ...
    error_message: Optional[str] = None
    started_at: float = field(default_factory=lambda: datetime.now(timezone.utc).timestamp())
    history: List[SubmissionState] = field(default_factory=lambda: [SubmissionState.BUILDING])

    @property
    def success(self) -> bool:
        return self.state is SubmissionState.CONFIRMED

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES
