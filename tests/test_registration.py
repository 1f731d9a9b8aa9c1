# tests/test_registration.py
import pytest

from anchor.config import FeeConfig
from anchor.core.errors import ConfigurationError, TransientNetworkError, ValidationError
from anchor.core.types import FeeEstimate, StatusCode
from anchor.chain.registration import RegistrationOrchestrator, RegistrationState

from conftest import FP_A, FakeLedger


def make_orchestrator(ledger, signer, **kwargs):
    sleeps = []
    orch = RegistrationOrchestrator(
        ledger=ledger,
        signer=signer,
        fee_config=FeeConfig(),
        expected_chain_id=80002,
        sleep=sleeps.append,
        **kwargs,
    )
    return orch, sleeps


def test_fresh_fingerprint_is_written_and_confirmed(ledger, signer):
    orch, sleeps = make_orchestrator(ledger, signer)
    outcome = orch.register(FP_A)

    assert outcome.status_code is StatusCode.CONFIRMED
    assert outcome.result.confirmed_at_unix > 0
    assert outcome.result.observed_block_number == ledger.block
    assert outcome.result.submission.submitter == signer.address
    assert outcome.wrote
    assert ledger.writes == 1
    assert outcome.states == [
        RegistrationState.START,
        RegistrationState.CHECK_EXISTING,
        RegistrationState.SELECT_FEES,
        RegistrationState.SUBMIT,
        RegistrationState.AWAIT_RECEIPT,
        RegistrationState.POLL_CONFIRM,
        RegistrationState.DONE_CONFIRMED,
    ]
    assert sleeps == []


def test_second_registration_is_idempotent(ledger, signer):
    orch, _ = make_orchestrator(ledger, signer)
    first = orch.register(FP_A)
    second = orch.register(FP_A)

    assert first.status_code is StatusCode.CONFIRMED
    assert second.status_code is StatusCode.CONFIRMED
    assert first.result.confirmed_at_unix == second.result.confirmed_at_unix
    assert ledger.writes == 1
    assert not second.wrote
    assert second.states[-1] is RegistrationState.DONE_CONFIRMED
    assert RegistrationState.SUBMIT not in second.states


def test_input_is_canonicalized(ledger, signer):
    orch, _ = make_orchestrator(ledger, signer)
    outcome = orch.register("  " + FP_A.upper().replace("0X", "0x") + " ")
    assert outcome.result.fingerprint == FP_A


def test_invalid_fingerprint_fails_before_any_network_call(ledger, signer):
    orch, _ = make_orchestrator(ledger, signer)
    with pytest.raises(ValidationError):
        orch.register("0xnothex")
    assert ledger.calls == []


def test_network_mismatch_fails_before_any_read_or_write(signer):
    ledger = FakeLedger(chain_id=1)
    orch, _ = make_orchestrator(ledger, signer)
    with pytest.raises(ConfigurationError, match="Wrong chain id"):
        orch.register(FP_A)
    assert ledger.calls == ["chain_id"]
    assert ledger.writes == 0


def test_read_lag_is_absorbed_by_poll(signer):
    ledger = FakeLedger(visibility_lag=2)
    orch, sleeps = make_orchestrator(ledger, signer, poll_attempts=3, poll_delay_s=0.8)
    outcome = orch.register(FP_A)

    assert outcome.status_code is StatusCode.CONFIRMED
    assert sleeps == [0.8, 0.8]
    assert ledger.calls.count("probe") == 4     # check + three polls


def test_exhausted_poll_reports_fail_unreadable(signer):
    ledger = FakeLedger(visibility_lag=10)
    orch, sleeps = make_orchestrator(ledger, signer, poll_attempts=3)
    outcome = orch.register(FP_A)

    assert outcome.status_code is StatusCode.FAIL_UNREADABLE
    assert outcome.result.ok is True
    assert outcome.result.confirmed_at_unix is None
    assert outcome.result.submission is not None
    assert len(sleeps) == 2
    assert outcome.states[-1] is RegistrationState.FAIL_UNREADABLE


def test_transient_errors_during_poll_are_retried(ledger, signer):
    orch, _ = make_orchestrator(ledger, signer, poll_attempts=3)
    original = ledger.submit_register_if_missing

    def submit_then_break_reads(*args):
        sub = original(*args)
        ledger.fail_next_probes(2)
        return sub

    ledger.submit_register_if_missing = submit_then_break_reads
    outcome = orch.register(FP_A)
    assert outcome.status_code is StatusCode.CONFIRMED


def test_transient_errors_exhausting_poll_report_fail_unreadable(ledger, signer):
    orch, _ = make_orchestrator(ledger, signer, poll_attempts=2)
    original = ledger.submit_register_if_missing

    def submit_then_break_reads(*args):
        sub = original(*args)
        ledger.fail_next_probes(5)
        return sub

    ledger.submit_register_if_missing = submit_then_break_reads
    outcome = orch.register(FP_A)
    assert outcome.status_code is StatusCode.FAIL_UNREADABLE


def test_concurrent_registration_converges(ledger, signer):
    """Another caller registers between CHECK_EXISTING and SUBMIT."""
    orch, _ = make_orchestrator(ledger, signer)
    original_estimate = ledger.estimate_fees

    def race():
        ledger.records[FP_A] = 1_700_000_000
        return original_estimate()

    ledger.estimate_fees = race
    outcome = orch.register(FP_A)

    assert outcome.status_code is StatusCode.CONFIRMED
    assert outcome.result.confirmed_at_unix == 1_700_000_000
    assert len(ledger.records) == 1


def test_rejected_write_still_converges_when_record_exists(ledger, signer):
    orch, _ = make_orchestrator(ledger, signer)
    ledger.reject_write = True
    original_estimate = ledger.estimate_fees

    def race():
        ledger.records[FP_A] = 1_700_000_123
        return original_estimate()

    ledger.estimate_fees = race
    outcome = orch.register(FP_A)
    assert outcome.status_code is StatusCode.CONFIRMED
    assert outcome.result.submission is None
    assert RegistrationState.AWAIT_RECEIPT not in outcome.states


def test_rejected_write_without_record_is_not_confirmed(signer):
    ledger = FakeLedger(reject_write=True)
    orch, _ = make_orchestrator(ledger, signer)
    outcome = orch.register(FP_A)
    assert outcome.status_code is StatusCode.NOT_CONFIRMED
    assert "did not accept" in outcome.result.explanatory_text


def test_reverted_transaction_is_not_confirmed(signer):
    ledger = FakeLedger(revert=True)
    orch, _ = make_orchestrator(ledger, signer)
    outcome = orch.register(FP_A)
    assert outcome.status_code is StatusCode.NOT_CONFIRMED
    assert outcome.receipt.receipt_status == "reverted"
    assert outcome.result.submission is not None


def test_missing_receipt_returns_submission(signer):
    ledger = FakeLedger(mine=False)
    orch, _ = make_orchestrator(ledger, signer)
    outcome = orch.register(FP_A)

    assert outcome.status_code is StatusCode.NOT_CONFIRMED
    assert outcome.result.submission.tx_ref in ledger.txs
    assert outcome.states[-1] is RegistrationState.DONE_SUBMITTED
    assert RegistrationState.POLL_CONFIRM not in outcome.states


def test_receipt_wait_error_falls_through_to_poll(signer):
    ledger = FakeLedger(receipt_error=True)
    orch, _ = make_orchestrator(ledger, signer)
    outcome = orch.register(FP_A)

    assert FP_A in ledger.records
    assert outcome.status_code is StatusCode.CONFIRMED
    assert outcome.result.confirmed_at_unix == ledger.records[FP_A]
    assert outcome.result.submission is not None
    assert RegistrationState.POLL_CONFIRM in outcome.states
    assert outcome.states[-1] is RegistrationState.DONE_CONFIRMED
    assert ledger.calls.count("probe") == 2


def test_receipt_wait_error_with_unreadable_record_is_fail_unreadable(signer):
    ledger = FakeLedger(receipt_error=True, visibility_lag=10)
    orch, sleeps = make_orchestrator(ledger, signer)
    outcome = orch.register(FP_A)

    assert outcome.status_code is StatusCode.FAIL_UNREADABLE
    assert outcome.result.ok is True
    assert outcome.result.submission is not None
    assert outcome.states[-1] is RegistrationState.FAIL_UNREADABLE
    assert ledger.calls.count("probe") == 1 + 3
    assert sleeps == [0.8, 0.8]


def test_fee_estimate_failure_uses_fallback_quote(signer):
    ledger = FakeLedger(fee_estimate=FeeEstimate.failed("estimate service down"))
    orch, _ = make_orchestrator(ledger, signer)
    outcome = orch.register(FP_A)

    assert outcome.status_code is StatusCode.CONFIRMED
    assert outcome.fee_quote.max_fee_per_gas == outcome.fee_quote.cap
    assert outcome.fee_quote.estimate.error == "estimate service down"


def test_unreachable_ledger_raises_transient(signer):
    ledger = FakeLedger(unreachable=True)
    orch, _ = make_orchestrator(ledger, signer)
    with pytest.raises(TransientNetworkError):
        orch.register(FP_A)
    assert ledger.writes == 0
