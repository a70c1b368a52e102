import pytest
from solders.pubkey import Pubkey

from conftest import DESTINATION, FAKE_SIGNATURE, OWNER
from consolidator.consolidation.base import SubmissionState
from consolidator.core.client import SignatureStatus
from consolidator.core.exceptions import NetworkError, SimulationError
from consolidator.core.instruction_builder import InstructionBuilder
from consolidator.core.transactions import TransactionSubmitter
from consolidator.core.wallet import ConfirmingSigner


def sol_transfer():
    return [InstructionBuilder.sol_transfer_instruction(
        Pubkey.from_string(OWNER), Pubkey.from_string(DESTINATION), 1000
    )]


def make_submitter(connection, signer, **kwargs):
    kwargs.setdefault("poll_interval", 0.01)
    kwargs.setdefault("timeout", 0.05)
    kwargs.setdefault("retry_base_delay", 0)
    return TransactionSubmitter(connection, signer, **kwargs)


@pytest.mark.asyncio
async def test_confirmed_after_processed(fake_connection, fake_signer):
    fake_connection.statuses = [
        None,
        SignatureStatus(confirmation_status="processed"),
        SignatureStatus(confirmation_status="confirmed"),
    ]
    transitions = []
    submitter = make_submitter(
        fake_connection, fake_signer, timeout=1.0,
        on_transition=lambda attempt, state: transitions.append(state),
    )

    attempt = await submitter.submit(sol_transfer(), label="Sweep")

    assert attempt.state is SubmissionState.CONFIRMED
    assert attempt.success
    assert attempt.signature == FAKE_SIGNATURE
    assert attempt.history == [
        SubmissionState.BUILDING,
        SubmissionState.SIGNING,
        SubmissionState.BROADCASTING,
        SubmissionState.PENDING,
        SubmissionState.CONFIRMED,
    ]
    assert transitions == attempt.history
    assert len(fake_signer.signed) == 1


@pytest.mark.asyncio
async def test_processed_for_whole_deadline_times_out(fake_connection, fake_signer):
    fake_connection.statuses = [SignatureStatus(confirmation_status="processed")]
    attempt = await make_submitter(fake_connection, fake_signer).submit(sol_transfer())

    assert attempt.state is SubmissionState.TIMED_OUT
    assert attempt.error_type == "ConfirmationTimeout"
    assert attempt.signature == FAKE_SIGNATURE
    assert fake_connection.count("get_signature_status") >= 2


@pytest.mark.asyncio
async def test_execution_error_fails(fake_connection, fake_signer):
    fake_connection.statuses = [
        SignatureStatus(confirmation_status="confirmed", err={"InstructionError": [0, "InvalidAccountData"]})
    ]
    attempt = await make_submitter(fake_connection, fake_signer).submit(sol_transfer())

    assert attempt.state is SubmissionState.FAILED
    assert attempt.error_type == "LedgerExecutionError"
    assert "Instruction 0" in attempt.error_message


@pytest.mark.asyncio
async def test_user_rejection_never_broadcasts(fake_connection, fake_signer):
    signer = ConfirmingSigner(fake_signer, lambda summary: False)
    attempt = await make_submitter(fake_connection, signer).submit(sol_transfer())

    assert attempt.state is SubmissionState.FAILED
    assert attempt.error_type == "UserRejected"
    assert attempt.history[-2:] == [SubmissionState.SIGNING, SubmissionState.FAILED]
    assert fake_connection.count("send_raw_transaction") == 0


@pytest.mark.asyncio
async def test_async_prompt_approval_signs(fake_connection, fake_signer):
    async def approve(summary):
        return True

    signer = ConfirmingSigner(fake_signer, approve)
    attempt = await make_submitter(fake_connection, signer).submit(sol_transfer())
    assert attempt.success


@pytest.mark.asyncio
async def test_transport_errors_are_retried(fake_connection, fake_signer):
    fake_connection.send_errors = [NetworkError("send_raw_transaction: ReadTimeout")]
    attempt = await make_submitter(fake_connection, fake_signer).submit(sol_transfer())

    assert attempt.success
    assert fake_connection.count("send_raw_transaction") == 2


@pytest.mark.asyncio
async def test_retries_are_bounded(fake_connection, fake_signer):
    fake_connection.send_errors = [NetworkError("down")] * 5
    attempt = await make_submitter(fake_connection, fake_signer, max_send_retries=3).submit(sol_transfer())

    assert attempt.state is SubmissionState.FAILED
    assert attempt.error_type == "NetworkError"
    assert fake_connection.count("send_raw_transaction") == 3


@pytest.mark.asyncio
async def test_preflight_rejection_is_not_retried(fake_connection, fake_signer):
    fake_connection.send_errors = [SimulationError("Preflight check failed: Instruction 0 failed", 0)]
    attempt = await make_submitter(fake_connection, fake_signer).submit(sol_transfer())

    assert attempt.state is SubmissionState.FAILED
    assert attempt.error_type == "PreflightError"
    assert fake_connection.count("send_raw_transaction") == 1


@pytest.mark.asyncio
async def test_blockhash_failure_is_a_build_failure(fake_connection, fake_signer):
    async def no_blockhash():
        raise NetworkError("get_latest_blockhash: ConnectError")

    fake_connection.get_latest_blockhash = no_blockhash
    attempt = await make_submitter(fake_connection, fake_signer).submit(sol_transfer())

    assert attempt.state is SubmissionState.FAILED
    assert attempt.error_type == "NetworkError"
    assert attempt.history == [SubmissionState.BUILDING, SubmissionState.FAILED]
    assert fake_signer.signed == []


class BrokenListener:
    async def wait_for_signature(self, signature, timeout):
        raise ConnectionError("websocket refused")


class PushListener:
    def __init__(self, status):
        self.status = status

    async def wait_for_signature(self, signature, timeout):
        return self.status


@pytest.mark.asyncio
async def test_subscription_failure_falls_back_to_polling(fake_connection, fake_signer):
    attempt = await make_submitter(fake_connection, fake_signer, listener=BrokenListener()).submit(sol_transfer())
    assert attempt.success
    assert fake_connection.count("get_signature_status") >= 1


@pytest.mark.asyncio
async def test_push_notification_confirms_without_polling(fake_connection, fake_signer):
    listener = PushListener(SignatureStatus(confirmation_status="confirmed"))
    attempt = await make_submitter(fake_connection, fake_signer, listener=listener).submit(sol_transfer())
    assert attempt.success
    assert fake_connection.count("get_signature_status") == 0
