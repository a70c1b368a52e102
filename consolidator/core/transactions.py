# consolidator/core/transactions.py

import asyncio
from typing import Callable, Optional, Sequence

from solders.instruction import Instruction
from solders.message import MessageV0
from solders.transaction import VersionedTransaction

from consolidator.consolidation.base import SubmissionAttempt, SubmissionState
from consolidator.core.client import SignatureStatus, SolanaClient, describe_transaction_error
from consolidator.core.exceptions import NetworkError, SimulationError, UserRejectedError
from consolidator.core.wallet import Signer
from consolidator.monitoring.signature_listener import SignatureListener
from consolidator.utils.logger import get_logger

logger = get_logger(__name__)

CONFIRMED_STATUSES = ("confirmed", "finalized")

TransitionCallback = Callable[[SubmissionAttempt, SubmissionState], None]


class TransactionSubmitter:
    """
    Builds, signs, broadcasts and confirms one versioned transaction per call.
    Every outcome is returned as a SubmissionAttempt; nothing is raised for
    ledger, signer or timeout failures.
    """

    def __init__(
            self,
            client: SolanaClient,
            signer: Signer,
            poll_interval: float = 1.0,
            timeout: float = 30.0,
            max_send_retries: int = 3,
            listener: Optional[SignatureListener] = None,
            on_transition: Optional[TransitionCallback] = None,
            retry_base_delay: float = 0.75,
    ):
        self.client = client
        self.signer = signer
        self.poll_interval = poll_interval
        self.timeout = timeout
        self.max_send_retries = max(1, max_send_retries)
        self.listener = listener
        self.on_transition = on_transition
        self.retry_base_delay = retry_base_delay

    def _transition(self, attempt: SubmissionAttempt, state: SubmissionState) -> None:
        attempt.state = state
        attempt.history.append(state)
        logger.debug(f"{attempt.label}: -> {state.value}")
        if self.on_transition is not None:
            self.on_transition(attempt, state)

    def _finish(
            self,
            attempt: SubmissionAttempt,
            state: SubmissionState,
            error_type: Optional[str] = None,
            error_message: Optional[str] = None,
    ) -> SubmissionAttempt:
        attempt.error_type = error_type
        attempt.error_message = error_message
        self._transition(attempt, state)
        if state is SubmissionState.CONFIRMED:
            logger.info(f"{attempt.label}: CONFIRMED. Sig: {attempt.signature}")
        elif state is SubmissionState.TIMED_OUT:
            logger.warning(f"{attempt.label}: {error_message}")
        else:
            logger.error(f"{attempt.label}: {error_type} - {error_message}")
        return attempt

    async def submit(self, instructions: Sequence[Instruction], label: str = "Transaction") -> SubmissionAttempt:
        attempt = SubmissionAttempt(label=label)
        if self.on_transition is not None:
            self.on_transition(attempt, attempt.state)

        # Building
        try:
            blockhash = await self.client.get_latest_blockhash()
            message = MessageV0.try_compile(
                payer=self.signer.pubkey,
                instructions=list(instructions),
                address_lookup_table_accounts=[],
                recent_blockhash=blockhash,
            )
        except NetworkError as e:
            return self._finish(attempt, SubmissionState.FAILED, "NetworkError", str(e))
        except Exception as e:
            logger.error(f"{label}: could not compile message: {e}", exc_info=True)
            return self._finish(attempt, SubmissionState.FAILED, "BuildError", str(e))

        # Signing
        self._transition(attempt, SubmissionState.SIGNING)
        try:
            tx = await self.signer.sign_transaction(message)
        except UserRejectedError:
            return self._finish(attempt, SubmissionState.FAILED, "UserRejected", "Transaction rejected")
        except Exception as e:
            logger.error(f"{label}: signing failed: {e}", exc_info=True)
            return self._finish(attempt, SubmissionState.FAILED, "SigningError", str(e))

        # Broadcasting
        self._transition(attempt, SubmissionState.BROADCASTING)
        try:
            attempt.signature = await self._broadcast(tx, label)
        except SimulationError as e:
            return self._finish(attempt, SubmissionState.FAILED, "PreflightError", str(e))
        except NetworkError as e:
            return self._finish(attempt, SubmissionState.FAILED, type(e).__name__, str(e))

        # Pending
        self._transition(attempt, SubmissionState.PENDING)
        return await self._confirm(attempt)

    async def _broadcast(self, tx: VersionedTransaction, label: str) -> str:
        """Sends with bounded retries on transport errors. Preflight rejections are not retried."""
        last_error: Optional[NetworkError] = None
        for attempt in range(self.max_send_retries):
            logger.info(f"{label}: Send attempt {attempt + 1}/{self.max_send_retries}...")
            try:
                signature = await self.client.send_raw_transaction(tx)
                logger.info(f"{label}: Sent successfully. Signature: {signature}")
                return signature
            except NetworkError as e:
                last_error = e
                logger.warning(f"{label}: send attempt {attempt + 1} failed: {e}")
            if attempt < self.max_send_retries - 1:
                delay = self.retry_base_delay * (1.5 ** attempt)  # Exponential backoff
                logger.info(f"{label}: Retrying in {delay:.2f}s...")
                await asyncio.sleep(delay)
        raise last_error

    async def _confirm(self, attempt: SubmissionAttempt) -> SubmissionAttempt:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout
        signature = attempt.signature

        if self.listener is not None:
            try:
                status = await self.listener.wait_for_signature(signature, timeout=self.timeout)
                if status is not None:
                    resolved = self._resolve(attempt, status)
                    if resolved is not None:
                        return resolved
            except Exception as e:
                logger.warning(f"{attempt.label}: signature subscription failed ({e}); polling instead.")

        while True:
            try:
                status = await self.client.get_signature_status(signature)
            except NetworkError as e:
                logger.warning(f"{attempt.label}: status poll failed: {e}")
                status = None
            if status is not None:
                resolved = self._resolve(attempt, status)
                if resolved is not None:
                    return resolved

            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            await asyncio.sleep(min(self.poll_interval, remaining))

        return self._finish(
            attempt,
            SubmissionState.TIMED_OUT,
            "ConfirmationTimeout",
            f"Transaction {signature} was not confirmed within {self.timeout:g}s. "
            f"It may still land; check the explorer.",
        )

    def _resolve(self, attempt: SubmissionAttempt, status: SignatureStatus) -> Optional[SubmissionAttempt]:
        if status.err is not None:
            message, _index = describe_transaction_error(status.err)
            return self._finish(attempt, SubmissionState.FAILED, "LedgerExecutionError", message)
        if status.confirmation_status in CONFIRMED_STATUSES:
            return self._finish(attempt, SubmissionState.CONFIRMED)
        return None
