# tests/conftest.py
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import pytest

from anchor.config import AnchorConfig
from anchor.core.errors import ConfigurationError, TransientNetworkError, WriteRejectedError
from anchor.core.types import FeeEstimate, FeeQuote, LedgerRecord, Submission, SubmissionStatus
from anchor.chain.ledger import Ledger
from anchor.chain.signer import SigningIdentity

TEST_KEY = "0x" + "11" * 32
CONTRACT = "0x" + "ab" * 20
FP_A = "0x" + "a1" * 32
FP_B = "0x" + "b2" * 32
TX_X = "0x" + "c3" * 32


@dataclass
class FakeLedger(Ledger):
    """
    In-memory stand-in for the ledger network.
    registerIfMissing semantics: at most one record per fingerprint.
    """
    chain_id: int = 80002
    block: int = 100
    now: int = 1_760_000_000
    records: Dict[str, int] = field(default_factory=dict)
    # probes that still report "absent" after a write is mined
    visibility_lag: int = 0
    mine: bool = True
    revert: bool = False
    reject_write: bool = False
    unreachable: bool = False
    # receipt wait fails with a transport error even though the write landed
    receipt_error: bool = False
    fee_estimate: FeeEstimate = field(default_factory=lambda: FeeEstimate(30 * 10**9, 2 * 10**9))
    # tx_ref -> "pending" | "mined"
    txs: Dict[str, str] = field(default_factory=dict)
    calls: List[str] = field(default_factory=list)
    writes: int = 0
    closed: bool = False
    _lag_left: Dict[str, int] = field(default_factory=dict)
    _fail_probes: int = 0

    def _net(self, op: str):
        self.calls.append(op)
        if self.unreachable:
            raise TransientNetworkError(f"{op} failed: connection refused")

    def fail_next_probes(self, n: int):
        self._fail_probes = n

    def assert_network_identity(self, expected_chain_id: int) -> None:
        self._net("chain_id")
        if self.chain_id != expected_chain_id:
            raise ConfigurationError(f"Wrong chain id from RPC. Expected {expected_chain_id}, got {self.chain_id}")

    def probe_confirmed(self, fingerprint: str) -> LedgerRecord:
        self._net("probe")
        if self._fail_probes:
            self._fail_probes -= 1
            raise TransientNetworkError("probe failed: timeout")
        ts = self.records.get(fingerprint)
        if ts is None:
            return LedgerRecord.absent(self.block)
        if self._lag_left.get(fingerprint, 0) > 0:
            self._lag_left[fingerprint] -= 1
            return LedgerRecord.absent(self.block)
        return LedgerRecord(exists=True, observed_block_number=self.block, confirmed_at_unix=ts)

    def submit_register_if_missing(self, fingerprint: str, fee_quote: FeeQuote, signer: SigningIdentity) -> Submission:
        self._net("submit")
        if self.reject_write:
            raise WriteRejectedError("register() would revert: already registered")
        self.writes += 1
        tx_ref = "0x" + f"{self.writes:064x}"
        self.txs[tx_ref] = "pending"
        if self.mine:
            self.block += 1
            self.txs[tx_ref] = "mined"
            if not self.revert and fingerprint not in self.records:
                self.records[fingerprint] = self.now + self.writes
                self._lag_left[fingerprint] = self.visibility_lag
        return Submission(tx_ref=tx_ref, submitter=signer.address)

    def resolve_submission(self, tx_ref: str) -> SubmissionStatus:
        self._net("resolve")
        state = self.txs.get(tx_ref)
        if state is None:
            return SubmissionStatus(tx_ref=tx_ref, state="unknown")
        if state == "pending":
            return SubmissionStatus(tx_ref=tx_ref, state="pending")
        return SubmissionStatus(
            tx_ref=tx_ref,
            state="mined",
            receipt_status="reverted" if self.revert else "success",
            block_number=self.block,
            confirmations=1,
        )

    def wait_for_receipt(self, tx_ref: str, timeout_s: float) -> Optional[SubmissionStatus]:
        self._net("receipt")
        if self.receipt_error:
            raise TransientNetworkError("receipt wait failed: connection reset")
        if self.txs.get(tx_ref) != "mined":
            return None
        return self.resolve_submission(tx_ref)

    def estimate_fees(self) -> FeeEstimate:
        self.calls.append("estimate")
        return self.fee_estimate

    def check_deployment(self) -> int:
        self._net("code")
        return 1234

    def signer_balance(self, signer: SigningIdentity) -> int:
        self._net("balance")
        return 5 * 10**18

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def signer() -> SigningIdentity:
    return SigningIdentity.from_hex(TEST_KEY)


@pytest.fixture
def config() -> AnchorConfig:
    return AnchorConfig(
        rpc_url="https://rpc.example.test/v1/secret-api-key",
        contract_address=CONTRACT,
        private_key=TEST_KEY,
        chain_id=80002,
        poll_delay_ms=0,
    )
