# anchor/core/types.py
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Literal, Optional


class StatusCode(str, Enum):
    """Mutually exclusive outcome of a register or verify call."""
    CONFIRMED = "CONFIRMED"
    SUBMITTED_UNCONFIRMED = "SUBMITTED_UNCONFIRMED"
    NOT_CONFIRMED = "NOT_CONFIRMED"
    FAIL_UNREADABLE = "FAIL_UNREADABLE"
    UNKNOWN = "UNKNOWN"


STATUS_TEXT = {
    StatusCode.CONFIRMED: "Confirmed",
    StatusCode.SUBMITTED_UNCONFIRMED: "Submitted, not yet confirmed",
    StatusCode.NOT_CONFIRMED: "Not confirmed",
    StatusCode.FAIL_UNREADABLE: "Accepted, not yet readable",
    StatusCode.UNKNOWN: "Could not be checked",
}

SubmissionStateName = Literal["mined", "pending", "unknown"]
ReceiptStatus = Literal["success", "reverted"]


@dataclass(frozen=True)
class LedgerRecord:
    """Result of one direct ledger read. confirmed_at_unix is set iff exists."""
    exists: bool
    observed_block_number: int
    confirmed_at_unix: Optional[int] = None
    submitter: Optional[str] = None     # only for shapes that store one

    def __post_init__(self):
        if self.exists and not self.confirmed_at_unix:
            raise ValueError("An existing record needs a non-zero confirmation time")
        if not self.exists and self.confirmed_at_unix:
            raise ValueError("A missing record cannot carry a confirmation time")
        if self.confirmed_at_unix is not None and self.confirmed_at_unix < 0:
            raise ValueError("confirmed_at_unix must be non-negative")

    @classmethod
    def absent(cls, observed_block_number: int) -> "LedgerRecord":
        return cls(exists=False, observed_block_number=observed_block_number)


@dataclass(frozen=True)
class FeeEstimate:
    """Raw network suggestion in wei. Either field may be missing; error is set on failure."""
    max_fee_per_gas: Optional[int] = None
    max_priority_fee_per_gas: Optional[int] = None
    error: Optional[str] = None

    @classmethod
    def failed(cls, error: str) -> "FeeEstimate":
        return cls(error=error)


@dataclass(frozen=True)
class FeeQuote:
    """Bounded EIP-1559 fee pair in wei, plus the bounds and raw estimate it came from."""
    max_fee_per_gas: int
    max_priority_fee_per_gas: int
    cap: int
    tip_cap: int
    min_tip: int
    estimate: FeeEstimate = field(default_factory=FeeEstimate)

    def __post_init__(self):
        if not (0 < self.max_priority_fee_per_gas <= self.max_fee_per_gas <= self.cap):
            raise ValueError(
                f"Fee quote violates 0 < priority <= max <= cap: "
                f"{self.max_priority_fee_per_gas} / {self.max_fee_per_gas} / {self.cap}"
            )

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class Submission:
    """A sent registration write. Not persisted; lives for one orchestration."""
    tx_ref: str
    submitter: Optional[str] = None

    def to_dict(self) -> dict:
        return {"txRef": self.tx_ref, "submittedBy": self.submitter}


@dataclass(frozen=True)
class SubmissionStatus:
    tx_ref: str
    state: SubmissionStateName
    receipt_status: Optional[ReceiptStatus] = None
    block_number: Optional[int] = None
    confirmations: Optional[int] = None

    @property
    def known(self) -> bool:
        return self.state in ("mined", "pending")

    def to_dict(self) -> dict:
        return {
            "txRef": self.tx_ref,
            "state": self.state,
            "mined": self.state == "mined",
            "pending": self.state == "pending",
            "receiptStatus": self.receipt_status,
            "blockNumber": self.block_number,
            "confirmations": self.confirmations,
        }


@dataclass(frozen=True)
class VerificationResult:
    """What a register or verify call reports back to the caller."""
    status_code: StatusCode
    fingerprint: str
    explanatory_text: str
    ok: bool = True
    confirmed_at_unix: Optional[int] = None
    observed_block_number: Optional[int] = None
    submission: Optional[Submission] = None
    submission_status: Optional[SubmissionStatus] = None
    error: Optional[str] = None

    def __post_init__(self):
        if self.status_code is StatusCode.CONFIRMED and not self.confirmed_at_unix:
            raise ValueError("CONFIRMED requires a confirmation time from a ledger read")
        if self.status_code is StatusCode.UNKNOWN and self.ok:
            raise ValueError("UNKNOWN results are never ok")

    @property
    def status_text(self) -> str:
        return STATUS_TEXT[self.status_code]

    def to_dict(self) -> dict:
        """Wire shape (camelCase) for HTTP and CLI output."""
        d = {
            "ok": self.ok,
            "statusCode": self.status_code.value,
            "statusText": self.status_text,
            "fingerprint": self.fingerprint,
            "confirmedAtUnix": self.confirmed_at_unix,
            "evidence": None,
            "submission": self.submission.to_dict() if self.submission else None,
            "explanatoryText": self.explanatory_text,
        }
        if self.observed_block_number is not None:
            d["evidence"] = {"observedBlockNumber": self.observed_block_number}
        if self.submission_status is not None:
            d["submissionStatus"] = self.submission_status.to_dict()
        if self.error is not None:
            d["error"] = self.error
        return d
