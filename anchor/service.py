# anchor/service.py
"""
Request-scoped facade used by the HTTP API and the CLI.

Each call validates input, then configuration, then opens one ledger
connection, asserts the network identity, does its work and closes the
connection. Nothing is shared between calls.
"""

import logging
import time
from contextlib import contextmanager
from typing import Callable, Optional

from anchor.config import AnchorConfig
from anchor.core.errors import TransientNetworkError, sanitize_error
from anchor.core.fingerprint import normalize_fingerprint, normalize_tx_ref
from anchor.core.types import FeeQuote, StatusCode, SubmissionStatus, VerificationResult
from anchor.chain.fees import describe_quote, select_fee
from anchor.chain.ledger import Ledger, open_ledger
from anchor.chain.registration import RegistrationOrchestrator, RegistrationOutcome
from anchor.chain.signer import SigningIdentity
from anchor.verify.classifier import VerificationClassifier

logger = logging.getLogger("anchor.service")

LedgerFactory = Callable[[AnchorConfig], Ledger]


class AnchorService:
    def __init__(
        self,
        config: AnchorConfig,
        ledger_factory: LedgerFactory = open_ledger,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config
        self.ledger_factory = ledger_factory
        self.sleep = sleep

    @contextmanager
    def _ledger(self):
        ledger = self.ledger_factory(self.config)
        try:
            yield ledger
        finally:
            ledger.close()

    def register_outcome(self, fingerprint: str) -> RegistrationOutcome:
        fp = normalize_fingerprint(fingerprint)
        self.config.validate_for_writes()
        signer = SigningIdentity.from_hex(self.config.private_key)

        with self._ledger() as ledger:
            orchestrator = RegistrationOrchestrator.from_config(ledger, signer, self.config, sleep=self.sleep)
            return orchestrator.register(fp)

    def register(self, fingerprint: str) -> VerificationResult:
        """
        CONFIRMED, NOT_CONFIRMED or FAIL_UNREADABLE; UNKNOWN (ok=False) when the
        network fails outside the internal confirmation poll.
        """
        fp = normalize_fingerprint(fingerprint)
        try:
            outcome = self.register_outcome(fp)
        except TransientNetworkError as e:
            detail = sanitize_error(e, self.config.secrets)
            logger.warning("registration of %s failed: %s", fp, detail)
            return VerificationResult(
                status_code=StatusCode.UNKNOWN,
                fingerprint=fp,
                ok=False,
                error=detail,
                explanatory_text="Registration is temporarily unavailable. Try again later.",
            )
        logger.info("registration of %s: %s", fp, outcome.status_code.value)
        return outcome.result

    def verify(self, fingerprint: str, submission_ref: Optional[str] = None) -> VerificationResult:
        fp = normalize_fingerprint(fingerprint)
        if submission_ref:
            normalize_tx_ref(submission_ref)
        self.config.validate_for_reads()

        with self._ledger() as ledger:
            classifier = VerificationClassifier(ledger, self.config.chain_id, self.config.secrets)
            result = classifier.classify(fp, submission_ref or None)
        logger.info("verification of %s: %s", fp, result.status_code.value)
        return result

    def lookup_submission(self, tx_ref: str) -> SubmissionStatus:
        ref = normalize_tx_ref(tx_ref)
        self.config.validate_for_reads()
        with self._ledger() as ledger:
            ledger.assert_network_identity(self.config.chain_id)
            return ledger.resolve_submission(ref)

    def quote_fees(self) -> FeeQuote:
        self.config.validate_for_reads()
        with self._ledger() as ledger:
            ledger.assert_network_identity(self.config.chain_id)
            return select_fee(ledger.estimate_fees(), self.config.fees)

    def diagnose(self) -> dict:
        """
        Deployment health: network identity, bytecode presence, signer address.
        Never includes the signing key or the RPC URL.
        """
        self.config.validate_for_reads()
        report = {
            "ok": True,
            "expectedChainId": self.config.chain_id,
            "contractAddress": self.config.contract_address,
            "contractShape": self.config.contract_shape,
            "signerAddress": None,
            "signerBalanceWei": None,
        }
        signer = None
        if self.config.private_key:
            signer = SigningIdentity.from_hex(self.config.private_key)
            report["signerAddress"] = signer.address

        with self._ledger() as ledger:
            ledger.assert_network_identity(self.config.chain_id)
            report["rpcChainId"] = self.config.chain_id
            size = ledger.check_deployment()
            report["bytecodePresent"] = size > 0
            report["bytecodeSize"] = size
            report["fees"] = describe_quote(select_fee(ledger.estimate_fees(), self.config.fees))
            if signer is not None:
                report["signerBalanceWei"] = str(ledger.signer_balance(signer))
        return report
