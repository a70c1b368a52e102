# consolidator/core/simulation.py

from typing import Dict, List, Optional, Sequence

from borsh_construct import CStruct, U64
from construct import Bytes
from solders.hash import Hash
from solders.instruction import Instruction
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import VersionedTransaction

from consolidator.consolidation.base import BalanceDelta, BalanceSnapshot, SimulationResult
from consolidator.core.client import AccountState, SolanaClient, describe_transaction_error
from consolidator.core.exceptions import NetworkError, SimulationError
from consolidator.core.pubkeys import SolanaProgramAddresses
from consolidator.utils.logger import get_logger

logger = get_logger(__name__)

# Leading fields of an SPL token account; the rest (delegate, state, ...) is not read
TOKEN_ACCOUNT_PREFIX_LAYOUT = CStruct(
    "mint" / Bytes(32),
    "owner" / Bytes(32),
    "amount" / U64,
)


def snapshot_from_state(address: str, state: Optional[AccountState]) -> BalanceSnapshot:
    """A missing account counts as closed: zero lamports, no tokens."""
    if state is None:
        return BalanceSnapshot(address=address, sol_lamports=0)
    per_mint: Dict[str, int] = {}
    if (
            state.owner == str(SolanaProgramAddresses.TOKEN_PROGRAM_ID)
            and len(state.data) >= TOKEN_ACCOUNT_PREFIX_LAYOUT.sizeof()
    ):
        parsed = TOKEN_ACCOUNT_PREFIX_LAYOUT.parse(state.data)
        per_mint[str(Pubkey.from_bytes(parsed.mint))] = parsed.amount
    return BalanceSnapshot(address=address, sol_lamports=state.lamports, per_mint_amounts=per_mint)


def compute_deltas(before: Sequence[BalanceSnapshot], after: Sequence[BalanceSnapshot]) -> List[BalanceDelta]:
    after_by_address = {snap.address: snap for snap in after}
    deltas: List[BalanceDelta] = []
    for old in before:
        new = after_by_address.get(old.address, BalanceSnapshot(address=old.address, sol_lamports=0))
        token_changes = {}
        for mint in set(old.per_mint_amounts) | set(new.per_mint_amounts):
            diff = new.per_mint_amounts.get(mint, 0) - old.per_mint_amounts.get(mint, 0)
            if diff:
                token_changes[mint] = diff
        deltas.append(
            BalanceDelta(
                address=old.address,
                old_balance=old.sol_lamports,
                new_balance=new.sol_lamports,
                change=new.sol_lamports - old.sol_lamports,
                token_changes=token_changes,
            )
        )
    return deltas


class TransactionSimulator:
    """
    Dry-runs an instruction list and predicts the balance change of every
    address of interest. Purely advisory: nothing is signed or reserved.
    """

    def __init__(self, client: SolanaClient):
        self.client = client

    async def snapshot(self, addresses: Sequence[str]) -> List[BalanceSnapshot]:
        states = await self.client.get_multiple_accounts(list(addresses))
        return [snapshot_from_state(address, state) for address, state in zip(addresses, states)]

    @staticmethod
    def build_unsigned_transaction(instructions: Sequence[Instruction], payer: Pubkey) -> VersionedTransaction:
        # The node replaces the blockhash and skips signature checks
        message = MessageV0.try_compile(
            payer=payer,
            instructions=list(instructions),
            address_lookup_table_accounts=[],
            recent_blockhash=Hash.default(),
        )
        placeholders = [Signature.default()] * message.header.num_required_signatures
        return VersionedTransaction.populate(message, placeholders)

    async def simulate(
            self,
            instructions: Sequence[Instruction],
            signers: Sequence[Pubkey],
            addresses: Sequence[str],
    ) -> SimulationResult:
        if not signers:
            raise ValueError("simulate() needs at least one signer (the fee payer)")
        addresses = list(dict.fromkeys(addresses))

        try:
            before = await self.snapshot(addresses)
            tx = self.build_unsigned_transaction(instructions, signers[0])
            simulated = await self.client.simulate_transaction(tx, addresses)
        except (NetworkError, SimulationError) as e:
            logger.warning(f"Simulation could not run: {e}")
            return SimulationResult(success=False, error=str(e))

        if simulated.err is not None:
            message, index = describe_transaction_error(simulated.err)
            logger.info(f"Simulation failed: {message}")
            return SimulationResult(
                success=False,
                error=message,
                failed_instruction_index=index,
                logs=list(simulated.logs),
                units_consumed=simulated.units_consumed,
            )

        if simulated.accounts is not None:
            after = [snapshot_from_state(a, s) for a, s in zip(addresses, simulated.accounts)]
        else:
            logger.debug("Node returned no projected accounts; re-reading live balances.")
            try:
                after = await self.snapshot(addresses)
            except NetworkError as e:
                logger.warning(f"Post-simulation snapshot failed: {e}")
                return SimulationResult(success=False, error=str(e), logs=list(simulated.logs))

        deltas = compute_deltas(before, after)
        logger.info(
            f"Simulation succeeded ({simulated.units_consumed} CU), "
            f"{sum(1 for d in deltas if d.change or d.token_changes)} address(es) change"
        )
        return SimulationResult(
            success=True,
            balance_changes=deltas,
            logs=list(simulated.logs),
            units_consumed=simulated.units_consumed,
        )
