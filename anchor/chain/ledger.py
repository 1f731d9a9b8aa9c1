# anchor/chain/ledger.py
"""
Ledger capability interface.

One implementation per transport; contract differences live in
`anchor.chain.shapes`, selected by configuration.
"""

from abc import ABC, abstractmethod
from typing import Optional

from anchor.core.types import FeeEstimate, FeeQuote, LedgerRecord, Submission, SubmissionStatus
from anchor.chain.signer import SigningIdentity


class Ledger(ABC):
    """Read/write operations against the ledger network. Every call is a round-trip."""

    @abstractmethod
    def assert_network_identity(self, expected_chain_id: int) -> None:
        """Raise ConfigurationError unless the connected network is `expected_chain_id`."""

    @abstractmethod
    def probe_confirmed(self, fingerprint: str) -> LedgerRecord:
        pass

    @abstractmethod
    def submit_register_if_missing(
        self, fingerprint: str, fee_quote: FeeQuote, signer: SigningIdentity
    ) -> Submission:
        pass

    @abstractmethod
    def resolve_submission(self, tx_ref: str) -> SubmissionStatus:
        pass

    @abstractmethod
    def wait_for_receipt(self, tx_ref: str, timeout_s: float) -> Optional[SubmissionStatus]:
        """Block until mined. Returns None if `timeout_s` passes first."""

    @abstractmethod
    def estimate_fees(self) -> FeeEstimate:
        """Best-effort network suggestion. Failures go into FeeEstimate.error, never raise."""

    @abstractmethod
    def check_deployment(self) -> int:
        """Bytecode size at the configured contract address (0 = nothing deployed)."""

    @abstractmethod
    def signer_balance(self, signer: SigningIdentity) -> int:
        """Native balance of the signing address, in wei."""

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def open_ledger(config) -> Ledger:
    """Ledger for one request, built from validated configuration."""
    from anchor.chain.web3_client import Web3Ledger

    return Web3Ledger(config)


__all__ = ["Ledger", "open_ledger"]
