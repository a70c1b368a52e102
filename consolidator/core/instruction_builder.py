# consolidator/core/instruction_builder.py
import asyncio
from typing import Dict, Iterable, List, Optional, Sequence, Set

from solders.instruction import Instruction
from solders.pubkey import Pubkey
from solders.system_program import TransferParams as SystemTransferParams
from solders.system_program import transfer as system_transfer
from spl.token.instructions import (
    BurnParams,
    CloseAccountParams,
    TransferParams,
    burn,
    close_account,
    create_associated_token_account,
    transfer,
)

from consolidator.consolidation.base import (
    InstructionKind,
    PlannedInstruction,
    SelectionSet,
    TokenAccount,
)
from consolidator.core.client import SolanaClient
from consolidator.core.constants import (
    RENT_EXEMPT_TOKEN_ACCOUNT_LAMPORTS,
    SOL_RESERVE_LAMPORTS,
)
from consolidator.core.exceptions import InvalidSelectionError
from consolidator.core.pubkeys import SolanaProgramAddresses
from consolidator.utils.logger import get_logger
from consolidator.utils.validation import require_address

logger = get_logger(__name__)


class InstructionBuilder:
    @staticmethod
    def get_associated_token_address(owner: Pubkey, mint: Pubkey) -> Pubkey:
        """Calculates the Associated Token Account address for a given owner and mint."""
        pda, _bump_seed = Pubkey.find_program_address(
            [bytes(owner), bytes(SolanaProgramAddresses.TOKEN_PROGRAM_ID), bytes(mint)],
            SolanaProgramAddresses.ASSOCIATED_TOKEN_ACCOUNT_PROGRAM_ID
        )
        return pda

    @staticmethod
    def get_create_ata_instruction(payer: Pubkey, owner: Pubkey, mint: Pubkey) -> Instruction:
        """
        Generates the instruction to create an Associated Token Account.
        The caller is responsible for checking that the account does not exist yet.
        """
        return create_associated_token_account(payer, owner, mint)

    @staticmethod
    def transfer_instruction(source: Pubkey, destination: Pubkey, owner: Pubkey, amount: int) -> Instruction:
        return transfer(
            TransferParams(
                program_id=SolanaProgramAddresses.TOKEN_PROGRAM_ID,
                source=source,
                dest=destination,
                owner=owner,
                amount=amount,
            )
        )

    @staticmethod
    def burn_instruction(account: Pubkey, mint: Pubkey, owner: Pubkey, amount: int) -> Instruction:
        return burn(
            BurnParams(
                program_id=SolanaProgramAddresses.TOKEN_PROGRAM_ID,
                account=account,
                mint=mint,
                owner=owner,
                amount=amount,
            )
        )

    @staticmethod
    def close_account_instruction(
            account_to_close: Pubkey,
            destination_wallet: Pubkey,
            owner: Pubkey
    ) -> Instruction:
        """Creates an instruction to close a token account and send its SOL to the destination."""
        return close_account(
            CloseAccountParams(
                program_id=SolanaProgramAddresses.TOKEN_PROGRAM_ID,
                account=account_to_close,
                dest=destination_wallet,
                owner=owner,
            )
        )

    @staticmethod
    def sol_transfer_instruction(source: Pubkey, destination: Pubkey, lamports: int) -> Instruction:
        return system_transfer(
            SystemTransferParams(from_pubkey=source, to_pubkey=destination, lamports=lamports)
        )

    @staticmethod
    def to_instruction(step: PlannedInstruction) -> Instruction:
        source = Pubkey.from_string(step.source)
        destination = Pubkey.from_string(step.destination)
        authority = Pubkey.from_string(step.authority)

        if step.kind is InstructionKind.CREATE_ASSOCIATED_ACCOUNT:
            # source holds the wallet the new account belongs to
            return InstructionBuilder.get_create_ata_instruction(
                payer=authority, owner=source, mint=Pubkey.from_string(step.mint)
            )
        if step.kind is InstructionKind.TRANSFER_TOKEN:
            return InstructionBuilder.transfer_instruction(source, destination, authority, step.amount)
        if step.kind is InstructionKind.BURN_TOKEN:
            return InstructionBuilder.burn_instruction(
                source, Pubkey.from_string(step.mint), authority, step.amount
            )
        if step.kind is InstructionKind.CLOSE_ACCOUNT:
            return InstructionBuilder.close_account_instruction(source, destination, authority)
        if step.kind is InstructionKind.TRANSFER_SOL:
            return InstructionBuilder.sol_transfer_instruction(source, destination, step.amount)
        raise ValueError(f"Unsupported instruction kind: {step.kind}")


def compile_instructions(planned: Iterable[PlannedInstruction]) -> List[Instruction]:
    return [InstructionBuilder.to_instruction(step) for step in planned]


def sol_sweep_amount(balance_lamports: int, reserve_lamports: int = SOL_RESERVE_LAMPORTS) -> int:
    """Lamports that can leave the wallet while ``reserve_lamports`` stays behind."""
    if balance_lamports <= reserve_lamports:
        return 0
    return balance_lamports - reserve_lamports


def estimate_reclaimed_rent(planned: Iterable[PlannedInstruction]) -> int:
    closes = sum(1 for step in planned if step.kind is InstructionKind.CLOSE_ACCOUNT)
    return closes * RENT_EXEMPT_TOKEN_ACCOUNT_LAMPORTS


def validate_selection(selection: SelectionSet, accounts: Dict[str, TokenAccount]) -> None:
    """Raises InvalidSelectionError when the selection breaks the balance rules."""
    both = selection.to_transfer & selection.to_burn
    if both:
        raise InvalidSelectionError(
            f"{len(both)} account(s) selected for both transfer and burn: {sorted(both)}"
        )
    for address in selection.to_close:
        token = accounts.get(address)
        if token is not None and token.raw_amount != 0:
            raise InvalidSelectionError(
                f"Account {address} holds {token.ui_amount} and cannot be closed without burning"
            )
    for address in selection.to_transfer | selection.to_burn:
        token = accounts.get(address)
        if token is not None and token.raw_amount <= 0:
            raise InvalidSelectionError(f"Account {address} has no balance to transfer or burn")


class ConsolidationPlanner:
    """Turns a selection into the ordered instruction list of one atomic transaction."""

    def __init__(self, client: SolanaClient, sol_reserve_lamports: int = SOL_RESERVE_LAMPORTS):
        self.client = client
        self.sol_reserve_lamports = sol_reserve_lamports

    async def build(
            self,
            selection: SelectionSet,
            destination: str,
            owner: str,
            accounts: Sequence[TokenAccount],
    ) -> List[PlannedInstruction]:
        require_address(destination, "destination address")
        require_address(owner, "owner address")
        by_address = {token.address: token for token in accounts}
        validate_selection(selection, by_address)

        for address in (selection.to_transfer | selection.to_close | selection.to_burn) - by_address.keys():
            logger.warning(f"Token info not found for account {address}; skipping it.")

        # Iterate in discovery order so the plan is deterministic
        transfers = [t for t in accounts if t.address in selection.to_transfer]
        burns = [t for t in accounts if t.address in selection.to_burn]
        closes = [t for t in accounts if t.address in selection.to_close]

        destination_pk = Pubkey.from_string(destination)
        missing_mints = await self._mints_missing_destination_account(
            destination_pk, {t.mint for t in transfers}
        )

        plan: List[PlannedInstruction] = []
        created: Set[str] = set()
        for token in transfers:
            destination_ata = str(
                InstructionBuilder.get_associated_token_address(destination_pk, Pubkey.from_string(token.mint))
            )
            if destination_ata == token.address:
                logger.warning(f"Account {token.address} already is the destination account; skipping transfer.")
                continue
            if token.mint in missing_mints and token.mint not in created:
                plan.append(
                    PlannedInstruction(
                        kind=InstructionKind.CREATE_ASSOCIATED_ACCOUNT,
                        source=destination,
                        destination=destination_ata,
                        authority=owner,
                        mint=token.mint,
                    )
                )
                created.add(token.mint)
            plan.append(
                PlannedInstruction(
                    kind=InstructionKind.TRANSFER_TOKEN,
                    source=token.address,
                    destination=destination_ata,
                    authority=owner,
                    amount=token.raw_amount,
                    mint=token.mint,
                )
            )

        for token in burns:
            # Burn must precede close: the ledger rejects closing a non-empty account
            plan.append(
                PlannedInstruction(
                    kind=InstructionKind.BURN_TOKEN,
                    source=token.address,
                    destination=token.mint,
                    authority=owner,
                    amount=token.raw_amount,
                    mint=token.mint,
                )
            )
            plan.append(self._close_step(token, destination, owner))

        for token in closes:
            plan.append(self._close_step(token, destination, owner))

        if selection.sol_balance_lamports is not None:
            lamports = sol_sweep_amount(selection.sol_balance_lamports, self.sol_reserve_lamports)
            if lamports > 0:
                plan.append(
                    PlannedInstruction(
                        kind=InstructionKind.TRANSFER_SOL,
                        source=owner,
                        destination=destination,
                        authority=owner,
                        amount=lamports,
                    )
                )
            else:
                logger.info(
                    f"SOL balance {selection.sol_balance_lamports} does not exceed the reserve "
                    f"({self.sol_reserve_lamports}); no SOL transfer planned."
                )

        logger.info(
            f"Planned {len(plan)} instruction(s): {len(transfers)} transfer(s), "
            f"{len(burns)} burn(s), {len(closes)} close(s), {len(created)} account creation(s)"
        )
        return plan

    @staticmethod
    def _close_step(token: TokenAccount, destination: str, owner: str) -> PlannedInstruction:
        return PlannedInstruction(
            kind=InstructionKind.CLOSE_ACCOUNT,
            source=token.address,
            destination=destination,
            authority=owner,
            mint=token.mint,
        )

    async def _mints_missing_destination_account(self, destination: Pubkey, mints: Set[str]) -> Set[str]:
        """One existence read per distinct mint, issued concurrently."""
        ordered = sorted(mints)
        atas = [
            InstructionBuilder.get_associated_token_address(destination, Pubkey.from_string(mint))
            for mint in ordered
        ]
        infos = await asyncio.gather(*[self.client.get_account_info(ata) for ata in atas])
        missing = {mint for mint, info in zip(ordered, infos) if info is None}
        if missing:
            logger.debug(f"Destination lacks token accounts for {len(missing)} mint(s)")
        return missing
