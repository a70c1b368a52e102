# consolidator/consolidation/consolidator.py

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from consolidator.consolidation.base import (
    InstructionKind,
    PlannedInstruction,
    SelectionSet,
    SimulationResult,
    SubmissionAttempt,
    SubmissionState,
    TokenAccount,
    WalletEntry,
)
from consolidator.core.client import SolanaClient
from consolidator.core.constants import EXPLORER_TX_URL, SOL_RESERVE_LAMPORTS
from consolidator.core.exceptions import ConsolidatorException
from consolidator.core.instruction_builder import (
    ConsolidationPlanner,
    compile_instructions,
    estimate_reclaimed_rent,
)
from consolidator.core.simulation import TransactionSimulator
from consolidator.core.transactions import TransactionSubmitter
from consolidator.core.wallet import Signer
from consolidator.discovery.accounts import AccountDiscovery
from consolidator.monitoring.signature_listener import SignatureListener
from consolidator.state.balance_cache import BalanceCache
from consolidator.state.preferences import DestinationPreference
from consolidator.utils.amounts import lamports_to_sol_str
from consolidator.utils.logger import get_logger
from consolidator.utils.notifier import (
    LONG_DURATION_SECONDS,
    VARIANT_DESTRUCTIVE,
    VARIANT_SUCCESS,
    VARIANT_WARNING,
    Notification,
    Notifier,
)
from consolidator.utils.validation import short_address

logger = get_logger(__name__)

ACTION_CLOSE = "close"
ACTION_TRANSFER = "transfer"
ACTION_BURN = "burn"
ACTION_SWEEP = "sweep"

SELECT_TOKENS = "tokens"
SELECT_EMPTY = "empty"

SHORT_DURATION_SECONDS = 3.0


def _plural(count: int, singular: str, plural: str) -> str:
    return f"{count} {singular if count == 1 else plural}"


@dataclass
class ConsolidationPreview:
    action: str
    planned: List[PlannedInstruction] = field(default_factory=list)
    simulation: Optional[SimulationResult] = None
    estimated_rent_lamports: int = 0


class WalletConsolidator:
    """
    User actions over one connected wallet: selection handling, build,
    optional dry run, submission and the single outcome notification.
    """

    def __init__(
            self,
            client: SolanaClient,
            signer: Signer,
            discovery: AccountDiscovery,
            cache: BalanceCache,
            notifier: Notifier,
            config: Optional[Dict[str, Any]] = None,
            preference: Optional[DestinationPreference] = None,
            submitter: Optional[TransactionSubmitter] = None,
    ):
        self.client = client
        self.signer = signer
        self.discovery = discovery
        self.cache = cache
        self.notifier = notifier
        self.config = config or {}
        self.preference = preference
        self.owner = signer.address
        self.selection = SelectionSet()

        self.simulate_first: bool = bool(self.config.get("SIMULATE_BEFORE_SUBMIT", False))
        self.explorer_tx_url: str = self.config.get("EXPLORER_TX_URL", EXPLORER_TX_URL)
        self.planner = ConsolidationPlanner(
            client, sol_reserve_lamports=int(self.config.get("SOL_RESERVE_LAMPORTS", SOL_RESERVE_LAMPORTS))
        )
        self.simulator = TransactionSimulator(client)
        if submitter is None:
            wss = self.config.get("SOLANA_WSS_ENDPOINT")
            submitter = TransactionSubmitter(
                client,
                signer,
                poll_interval=float(self.config.get("CONFIRM_POLL_INTERVAL_SECONDS", 1.0)),
                timeout=float(self.config.get("CONFIRM_TIMEOUT_SECONDS", 30.0)),
                max_send_retries=int(self.config.get("MAX_SEND_RETRIES", 3)),
                listener=SignatureListener(wss) if wss else None,
            )
        self.submitter = submitter

    # --- Wallet state ---

    async def load(self) -> Optional[WalletEntry]:
        """Foreground refresh; failures are reported once and leave the old entry."""
        try:
            return await self.cache.refresh(self.owner)
        except ConsolidatorException as e:
            logger.error(f"Failed to fetch balances for {self.owner}: {e}")
            await self.notifier.notify(Notification(
                title="Error",
                description=f"Failed to fetch balances for wallet {short_address(self.owner)}",
                variant=VARIANT_DESTRUCTIVE,
                duration_seconds=SHORT_DURATION_SECONDS,
            ))
            return None

    @property
    def entry(self) -> Optional[WalletEntry]:
        return self.cache.get(self.owner)

    def accounts(self) -> Sequence[TokenAccount]:
        entry = self.entry
        return entry.tokens if entry is not None else ()

    def destination(self) -> str:
        if self.preference is not None:
            return self.preference.resolve(self.owner)
        return self.owner

    # --- Selection ---

    def select_all(self, kind: str) -> None:
        if kind == SELECT_TOKENS:
            self.selection.to_transfer = {a.address for a in self.accounts() if a.raw_amount > 0}
        elif kind == SELECT_EMPTY:
            self.selection.to_close = {a.address for a in self.accounts() if a.raw_amount == 0}
        else:
            raise ValueError(f"Unknown selection kind: {kind!r}")

    @staticmethod
    def _toggle(target: set, address: str) -> None:
        if address in target:
            target.discard(address)
        else:
            target.add(address)

    def toggle_transfer(self, address: str) -> None:
        self._toggle(self.selection.to_transfer, address)

    def toggle_close(self, address: str) -> None:
        self._toggle(self.selection.to_close, address)

    def toggle_burn(self, address: str) -> None:
        self._toggle(self.selection.to_burn, address)

    def clear_selection(self) -> None:
        self.selection = SelectionSet()

    def _selection_for(self, action: str) -> SelectionSet:
        if action == ACTION_CLOSE:
            return SelectionSet(to_close=set(self.selection.to_close))
        if action == ACTION_TRANSFER:
            return SelectionSet(to_transfer=set(self.selection.to_transfer))
        if action == ACTION_BURN:
            # Non-zero picks are burned then closed, empty ones just closed
            by_address = {a.address: a for a in self.accounts()}
            picked = self.selection.to_burn | self.selection.to_close
            to_burn = {a for a in picked if a in by_address and by_address[a].raw_amount > 0}
            return SelectionSet(to_burn=to_burn, to_close=picked - to_burn)
        if action == ACTION_SWEEP:
            entry = self.entry
            return SelectionSet(sol_balance_lamports=entry.sol_lamports if entry else 0)
        raise ValueError(f"Unknown action: {action!r}")

    def _clear_used(self, action: str) -> None:
        if action == ACTION_CLOSE:
            self.selection.to_close = set()
        elif action == ACTION_TRANSFER:
            self.selection.to_transfer = set()
        elif action == ACTION_BURN:
            self.selection.to_burn = set()
            self.selection.to_close = set()
        elif action == ACTION_SWEEP:
            self.selection.sol_balance_lamports = None

    # --- Actions ---

    async def close_empty_accounts(self) -> Optional[SubmissionAttempt]:
        return await self._run(ACTION_CLOSE)

    async def transfer_selected_tokens(self) -> Optional[SubmissionAttempt]:
        return await self._run(ACTION_TRANSFER)

    async def burn_dust_and_claim(self) -> Optional[SubmissionAttempt]:
        return await self._run(ACTION_BURN)

    async def sweep_sol(self) -> Optional[SubmissionAttempt]:
        return await self._run(ACTION_SWEEP)

    async def preview(self, action: str) -> ConsolidationPreview:
        """Planned instructions, dry-run result and reclaimable rent, without submitting."""
        if self.entry is None:
            await self.cache.refresh(self.owner)
        planned = await self.planner.build(
            self._selection_for(action), self.destination(), self.owner, self.accounts()
        )
        preview = ConsolidationPreview(
            action=action, planned=planned, estimated_rent_lamports=estimate_reclaimed_rent(planned)
        )
        if planned:
            preview.simulation = await self.simulator.simulate(
                compile_instructions(planned), [self.signer.pubkey], self._addresses_of_interest(planned)
            )
        return preview

    def _addresses_of_interest(self, planned: Sequence[PlannedInstruction]) -> List[str]:
        addresses = [self.owner]
        for step in planned:
            addresses.append(step.source)
            if step.kind is not InstructionKind.BURN_TOKEN:
                addresses.append(step.destination)
        return list(dict.fromkeys(addresses))

    async def _run(self, action: str) -> Optional[SubmissionAttempt]:
        if self.entry is None and await self.load() is None:
            return None

        selection = self._selection_for(action)
        if action != ACTION_SWEEP and selection.total_accounts() == 0:
            await self._notify_empty_selection(action)
            return None

        try:
            planned = await self.planner.build(selection, self.destination(), self.owner, self.accounts())
        except ConsolidatorException as e:
            logger.error(f"Could not build {action} transaction: {e}")
            await self.notifier.notify(Notification(
                title=self._error_title(action),
                description=str(e),
                variant=VARIANT_DESTRUCTIVE,
            ))
            return None

        if not planned:
            await self.notifier.notify(Notification(
                title="Nothing to do",
                description=(
                    f"SOL balance does not exceed the {lamports_to_sol_str(self.planner.sol_reserve_lamports)} SOL reserve"
                    if action == ACTION_SWEEP else "The selected accounts need no changes"
                ),
                duration_seconds=SHORT_DURATION_SECONDS,
            ))
            return None

        instructions = compile_instructions(planned)
        if self.simulate_first:
            simulation = await self.simulator.simulate(
                instructions, [self.signer.pubkey], self._addresses_of_interest(planned)
            )
            if not simulation.success:
                await self.notifier.notify(Notification(
                    title="Simulation failed",
                    description=simulation.error or "The transaction would fail",
                    variant=VARIANT_DESTRUCTIVE,
                ))
                return None

        attempt = await self.submitter.submit(instructions, label=action.capitalize())
        await self._report(action, attempt, planned)

        if attempt.success:
            self._clear_used(action)
            # Pre-submission balances are stale even if the re-scan fails
            self.cache.invalidate(self.owner)
            await self.cache.refresh(self.owner, silent=True)
        return attempt

    # --- Notifications ---

    async def _notify_empty_selection(self, action: str) -> None:
        descriptions = {
            ACTION_CLOSE: "Please select at least one empty account to close",
            ACTION_TRANSFER: "Please select at least one token to transfer",
            ACTION_BURN: "Please select at least one token account to burn or close",
        }
        await self.notifier.notify(Notification(
            title="No tokens selected" if action == ACTION_TRANSFER else "No accounts selected",
            description=descriptions[action],
            duration_seconds=SHORT_DURATION_SECONDS,
        ))

    @staticmethod
    def _error_title(action: str) -> str:
        return {
            ACTION_CLOSE: "Error closing accounts",
            ACTION_TRANSFER: "Error transferring tokens",
            ACTION_BURN: "Error processing accounts",
            ACTION_SWEEP: "Error transferring SOL",
        }[action]

    def explorer_link(self, signature: Optional[str]) -> Optional[str]:
        return self.explorer_tx_url.format(signature=signature) if signature else None

    def _success_notification(self, action: str, attempt: SubmissionAttempt,
                              planned: Sequence[PlannedInstruction]) -> Notification:
        link = self.explorer_link(attempt.signature)
        if action == ACTION_CLOSE:
            count = sum(1 for s in planned if s.kind is InstructionKind.CLOSE_ACCOUNT)
            return Notification(
                title="Accounts closed successfully",
                description=f"Closed {_plural(count, 'empty token account', 'empty token accounts')}",
                link=link,
                variant=VARIANT_SUCCESS,
            )
        if action == ACTION_TRANSFER:
            count = sum(1 for s in planned if s.kind is InstructionKind.TRANSFER_TOKEN)
            return Notification(
                title="Tokens transferred successfully",
                description=f"Transferred {_plural(count, 'token balance', 'token balances')}",
                link=link,
                variant=VARIANT_SUCCESS,
            )
        if action == ACTION_BURN:
            count = sum(1 for s in planned if s.kind is InstructionKind.CLOSE_ACCOUNT)
            rent = lamports_to_sol_str(estimate_reclaimed_rent(planned))
            return Notification(
                title="Accounts processed successfully",
                description=f"Processed {_plural(count, 'token account', 'token accounts')} and reclaimed ~{rent} SOL",
                link=link,
                variant=VARIANT_SUCCESS,
            )
        amount = sum(s.amount for s in planned if s.kind is InstructionKind.TRANSFER_SOL)
        return Notification(
            title="SOL transferred successfully",
            description=f"Transferred {lamports_to_sol_str(amount)} SOL",
            link=link,
            variant=VARIANT_SUCCESS,
        )

    async def _report(self, action: str, attempt: SubmissionAttempt,
                      planned: Sequence[PlannedInstruction]) -> None:
        if attempt.state is SubmissionState.CONFIRMED:
            notification = self._success_notification(action, attempt, planned)
        elif attempt.state is SubmissionState.TIMED_OUT:
            notification = Notification(
                title="Confirmation timed out",
                description=(
                    f"Transaction {attempt.signature} was not confirmed in time and may still land. "
                    f"Check the explorer before retrying."
                ),
                link=self.explorer_link(attempt.signature),
                variant=VARIANT_WARNING,
                duration_seconds=LONG_DURATION_SECONDS,
            )
        elif attempt.error_type == "UserRejected":
            notification = Notification(
                title="Transaction rejected",
                description="You declined the transaction in your wallet",
                duration_seconds=SHORT_DURATION_SECONDS,
            )
        else:
            notification = Notification(
                title=self._error_title(action),
                description=attempt.error_message or "An unknown error occurred",
                link=self.explorer_link(attempt.signature),
                variant=VARIANT_DESTRUCTIVE,
            )
        await self.notifier.notify(notification)
