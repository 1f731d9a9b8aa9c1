# anchor/verify/classifier.py
import logging
from typing import Optional

from anchor.core.errors import TransientNetworkError, sanitize_error
from anchor.core.fingerprint import normalize_fingerprint, normalize_tx_ref
from anchor.core.types import StatusCode, Submission, SubmissionStatus, VerificationResult
from anchor.chain.ledger import Ledger

logger = logging.getLogger("anchor.verify")


class VerificationClassifier:
    """
    Classifies a fingerprint into exactly one of CONFIRMED, SUBMITTED_UNCONFIRMED,
    NOT_CONFIRMED or UNKNOWN.

    CONFIRMED is only ever produced from a ledger read made inside the same
    classify() call. A submission reference can lower the verdict to
    SUBMITTED_UNCONFIRMED; it can never raise it to CONFIRMED.
    """

    def __init__(self, ledger: Ledger, expected_chain_id: int, secrets=()):
        self.ledger = ledger
        self.expected_chain_id = expected_chain_id
        self._secrets = tuple(secrets)

    def classify(self, fingerprint: str, submission_ref: Optional[str] = None) -> VerificationResult:
        """
        Validation and configuration errors propagate. Network failures become UNKNOWN.
        """
        fp = normalize_fingerprint(fingerprint)
        tx_ref = normalize_tx_ref(submission_ref) if submission_ref not in (None, "") else None

        try:
            self.ledger.assert_network_identity(self.expected_chain_id)
            record = self.ledger.probe_confirmed(fp)
        except TransientNetworkError as e:
            return self._unknown(fp, e)

        if record.exists:
            return VerificationResult(
                status_code=StatusCode.CONFIRMED,
                fingerprint=fp,
                confirmed_at_unix=record.confirmed_at_unix,
                observed_block_number=record.observed_block_number,
                explanatory_text=(
                    f"A confirmed ledger record exists for this fingerprint "
                    f"(read at block {record.observed_block_number})."
                ),
            )

        if tx_ref is None:
            return self._not_confirmed(fp, record.observed_block_number)

        try:
            status = self.ledger.resolve_submission(tx_ref)
        except TransientNetworkError as e:
            return self._unknown(fp, e)

        return self._from_submission(fp, record.observed_block_number, status)

    def _from_submission(self, fp: str, block: int, status: SubmissionStatus) -> VerificationResult:
        if not status.known:
            return self._not_confirmed(
                fp, block, status,
                "No confirmed record, and the submission reference is unknown to the network.",
            )
        if status.receipt_status == "reverted":
            return self._not_confirmed(
                fp, block, status,
                "No confirmed record; the referenced submission was mined but reverted.",
            )

        text = (
            "A submission is pending on the network; no confirmed record is readable yet."
            if status.state == "pending"
            else "The submission was mined, but no confirmed record is readable yet."
        )
        return VerificationResult(
            status_code=StatusCode.SUBMITTED_UNCONFIRMED,
            fingerprint=fp,
            observed_block_number=block,
            submission=Submission(tx_ref=status.tx_ref),
            submission_status=status,
            explanatory_text=text,
        )

    def _not_confirmed(
        self,
        fp: str,
        block: int,
        status: Optional[SubmissionStatus] = None,
        text: str = "No confirmed ledger record exists for this fingerprint.",
    ) -> VerificationResult:
        return VerificationResult(
            status_code=StatusCode.NOT_CONFIRMED,
            fingerprint=fp,
            observed_block_number=block,
            submission_status=status,
            explanatory_text=text,
        )

    def _unknown(self, fp: str, err: Exception) -> VerificationResult:
        detail = sanitize_error(err, self._secrets)
        logger.warning("classification of %s incomplete: %s", fp, detail)
        return VerificationResult(
            status_code=StatusCode.UNKNOWN,
            fingerprint=fp,
            ok=False,
            error=detail,
            explanatory_text="The ledger could not be reached; the status is unknown. Try again later.",
        )
