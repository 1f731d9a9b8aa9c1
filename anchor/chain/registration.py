# anchor/chain/registration.py
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional

from anchor.config import AnchorConfig, FeeConfig
from anchor.core.errors import TransientNetworkError, WriteRejectedError
from anchor.core.fingerprint import normalize_fingerprint
from anchor.core.types import (
    FeeQuote,
    LedgerRecord,
    StatusCode,
    Submission,
    SubmissionStatus,
    VerificationResult,
)
from anchor.chain.fees import select_fee
from anchor.chain.ledger import Ledger
from anchor.chain.signer import SigningIdentity

logger = logging.getLogger("anchor.registration")


class RegistrationState(str, Enum):
    START = "START"
    CHECK_EXISTING = "CHECK_EXISTING"
    SELECT_FEES = "SELECT_FEES"
    SUBMIT = "SUBMIT"
    AWAIT_RECEIPT = "AWAIT_RECEIPT"
    POLL_CONFIRM = "POLL_CONFIRM"
    DONE_CONFIRMED = "DONE_CONFIRMED"
    DONE_SUBMITTED = "DONE_SUBMITTED"
    FAIL_UNREADABLE = "FAIL_UNREADABLE"


@dataclass
class RegistrationOutcome:
    result: VerificationResult
    states: List[RegistrationState] = field(default_factory=list)
    fee_quote: Optional[FeeQuote] = None
    receipt: Optional[SubmissionStatus] = None

    @property
    def status_code(self) -> StatusCode:
        return self.result.status_code

    @property
    def wrote(self) -> bool:
        return RegistrationState.SUBMIT in self.states and self.result.submission is not None


@dataclass
class RegistrationOrchestrator:
    """
    Idempotent registration of one fingerprint:
    probe → (exists: done) → fees → submit → await receipt → bounded re-probe.

    No client-side locking: the ledger write is itself idempotent, so a
    concurrent registration of the same fingerprint converges on the re-probe.
    """
    ledger: Ledger
    signer: SigningIdentity
    fee_config: FeeConfig
    expected_chain_id: int
    poll_attempts: int = 3
    poll_delay_s: float = 0.8
    receipt_timeout_s: float = 60.0
    sleep: Callable[[float], None] = time.sleep

    @classmethod
    def from_config(cls, ledger: Ledger, signer: SigningIdentity, config: AnchorConfig, **kwargs):
        return cls(
            ledger=ledger,
            signer=signer,
            fee_config=config.fees,
            expected_chain_id=config.chain_id,
            poll_attempts=config.poll_attempts,
            poll_delay_s=config.poll_delay_s,
            receipt_timeout_s=config.receipt_timeout_s,
            **kwargs,
        )

    def register(self, fingerprint: str) -> RegistrationOutcome:
        fp = normalize_fingerprint(fingerprint)
        outcome = RegistrationOutcome(result=None, states=[RegistrationState.START])

        self.ledger.assert_network_identity(self.expected_chain_id)

        outcome.states.append(RegistrationState.CHECK_EXISTING)
        existing = self.ledger.probe_confirmed(fp)
        if existing.exists:
            logger.info("%s already confirmed at %s; no write", fp, existing.confirmed_at_unix)
            outcome.states.append(RegistrationState.DONE_CONFIRMED)
            outcome.result = _confirmed(fp, existing, None, "Already confirmed on the ledger; no new write was made.")
            return outcome

        outcome.states.append(RegistrationState.SELECT_FEES)
        outcome.fee_quote = select_fee(self.ledger.estimate_fees(), self.fee_config)

        outcome.states.append(RegistrationState.SUBMIT)
        submission = None
        rejected = None
        try:
            submission = self.ledger.submit_register_if_missing(fp, outcome.fee_quote, self.signer)
        except WriteRejectedError as e:
            # may be a lost race against another registration; the re-probe decides
            logger.warning("write for %s rejected: %s", fp, e)
            rejected = e

        if submission is not None:
            outcome.states.append(RegistrationState.AWAIT_RECEIPT)
            receipt_lost = False
            try:
                outcome.receipt = self.ledger.wait_for_receipt(submission.tx_ref, self.receipt_timeout_s)
            except TransientNetworkError as e:
                # the write may have landed; the re-probe decides
                logger.warning("receipt wait for %s failed: %s", submission.tx_ref, e)
                receipt_lost = True

            if outcome.receipt is None and not receipt_lost:
                outcome.states.append(RegistrationState.DONE_SUBMITTED)
                outcome.result = VerificationResult(
                    status_code=StatusCode.NOT_CONFIRMED,
                    fingerprint=fp,
                    submission=submission,
                    explanatory_text=(
                        "A registration was submitted but no receipt arrived in time. "
                        "Verify later using the submission reference."
                    ),
                )
                return outcome

        outcome.states.append(RegistrationState.POLL_CONFIRM)
        record = self._poll_confirmed(fp)
        if record is not None:
            outcome.states.append(RegistrationState.DONE_CONFIRMED)
            outcome.result = _confirmed(fp, record, submission, "Registered and confirmed on the ledger.")
            return outcome

        reverted = outcome.receipt is not None and outcome.receipt.receipt_status == "reverted"
        if rejected is not None or reverted:
            reason = str(rejected) if rejected is not None else "the transaction reverted"
            outcome.states.append(RegistrationState.DONE_SUBMITTED)
            outcome.result = VerificationResult(
                status_code=StatusCode.NOT_CONFIRMED,
                fingerprint=fp,
                submission=submission,
                explanatory_text=f"The ledger did not accept the registration: {reason}.",
            )
            return outcome

        outcome.states.append(RegistrationState.FAIL_UNREADABLE)
        outcome.result = VerificationResult(
            status_code=StatusCode.FAIL_UNREADABLE,
            fingerprint=fp,
            submission=submission,
            explanatory_text=(
                "The network accepted the registration but the record is not yet readable. "
                "Retry verification shortly; this is not an anchoring failure."
            ),
        )
        return outcome

    def _poll_confirmed(self, fingerprint: str) -> Optional[LedgerRecord]:
        """Reads can lag their own confirmation; re-probe a bounded number of times."""
        for attempt in range(1, self.poll_attempts + 1):
            if attempt > 1:
                self.sleep(self.poll_delay_s)
            try:
                record = self.ledger.probe_confirmed(fingerprint)
            except TransientNetworkError as e:
                logger.info("confirm poll %d/%d for %s failed: %s", attempt, self.poll_attempts, fingerprint, e)
                continue
            if record.exists:
                return record
            logger.debug("confirm poll %d/%d: %s not visible yet", attempt, self.poll_attempts, fingerprint)
        return None


def _confirmed(
    fingerprint: str, record: LedgerRecord, submission: Optional[Submission], text: str
) -> VerificationResult:
    return VerificationResult(
        status_code=StatusCode.CONFIRMED,
        fingerprint=fingerprint,
        confirmed_at_unix=record.confirmed_at_unix,
        observed_block_number=record.observed_block_number,
        submission=submission,
        explanatory_text=text,
    )
