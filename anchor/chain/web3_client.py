# anchor/chain/web3_client.py
import logging
from contextlib import contextmanager
from typing import Optional

import requests
from web3 import Web3
from web3.exceptions import (
    BadFunctionCallOutput,
    ContractLogicError,
    TimeExhausted,
    TransactionNotFound,
    Web3Exception,
)

from anchor.config import AnchorConfig
from anchor.core.errors import (
    AnchorError,
    ConfigurationError,
    TransientNetworkError,
    WriteRejectedError,
    sanitize_error,
)
from anchor.core.fingerprint import fingerprint_bytes
from anchor.core.types import FeeEstimate, FeeQuote, LedgerRecord, Submission, SubmissionStatus
from anchor.chain.ledger import Ledger
from anchor.chain.shapes import resolve_shape
from anchor.chain.signer import SigningIdentity

logger = logging.getLogger("anchor.chain.web3")

# estimateFeesPerGas-style headroom over the latest base fee: x1.2
BASE_FEE_MULTIPLIER_NUM = 12
BASE_FEE_MULTIPLIER_DEN = 10
RECEIPT_POLL_LATENCY_S = 1.0


class Web3Ledger(Ledger):
    """Ledger over JSON-RPC (EVM) using web3.py. Scoped to a single request."""

    def __init__(self, config: AnchorConfig, w3: Optional[Web3] = None):
        self.config = config
        self.shape = resolve_shape(config.contract_shape, config.read_function, config.write_function)
        self._secrets = config.secrets
        self.w3 = w3 or Web3(
            Web3.HTTPProvider(config.rpc_url, request_kwargs={"timeout": config.rpc_timeout_s})
        )
        self.address = Web3.to_checksum_address(config.contract_address)
        self.contract = self.w3.eth.contract(address=self.address, abi=self.shape.abi())

    @contextmanager
    def _network(self, op: str):
        try:
            yield
        except AnchorError:
            raise
        except (requests.exceptions.RequestException, Web3Exception, OSError) as e:
            detail = sanitize_error(e, self._secrets)
            logger.warning("%s failed: %s", op, detail)
            raise TransientNetworkError(f"{op} failed: {detail}") from e

    def _fn(self, name: str, fingerprint: str):
        return self.contract.get_function_by_name(name)(fingerprint_bytes(fingerprint))

    def assert_network_identity(self, expected_chain_id: int) -> None:
        with self._network("chain id lookup"):
            actual = int(self.w3.eth.chain_id)
        if actual != expected_chain_id:
            logger.error("network identity mismatch: expected %s, got %s", expected_chain_id, actual)
            raise ConfigurationError(
                f"Wrong chain id from RPC. Expected {expected_chain_id}, got {actual}"
            )

    def probe_confirmed(self, fingerprint: str) -> LedgerRecord:
        with self._network("ledger read"):
            block = int(self.w3.eth.block_number)
            try:
                raw = self._fn(self.shape.read_function, fingerprint).call(block_identifier=block)
            except BadFunctionCallOutput as e:
                raise ConfigurationError(
                    f"{self.shape.read_function}() returned no data at {self.address}; "
                    "is the contract deployed on this network?"
                ) from e
            except ContractLogicError as e:
                if self.shape.revert_means_missing:
                    logger.debug("read reverted for %s, treating as absent", fingerprint)
                    return LedgerRecord.absent(block)
                raise ConfigurationError(
                    f"{self.shape.read_function}() reverted; check ANCHOR_CONTRACT_SHAPE "
                    f"('{self.shape.name}'): {sanitize_error(e, self._secrets)}"
                ) from e

        exists, ts, submitter = self.shape.interpret(raw)
        logger.debug("probe %s at block %s: exists=%s", fingerprint, block, exists)
        return LedgerRecord(
            exists=exists,
            observed_block_number=block,
            confirmed_at_unix=ts,
            submitter=submitter,
        )

    def submit_register_if_missing(
        self, fingerprint: str, fee_quote: FeeQuote, signer: SigningIdentity
    ) -> Submission:
        sender = signer.address
        with self._network("submission"):
            nonce = self.w3.eth.get_transaction_count(sender, "pending")
            try:
                # gas estimation doubles as the simulation of the write
                tx = self._fn(self.shape.write_function, fingerprint).build_transaction({
                    "from": sender,
                    "nonce": nonce,
                    "chainId": self.config.chain_id,
                    "maxFeePerGas": fee_quote.max_fee_per_gas,
                    "maxPriorityFeePerGas": fee_quote.max_priority_fee_per_gas,
                })
            except ContractLogicError as e:
                raise WriteRejectedError(
                    f"{self.shape.write_function}() would revert: {sanitize_error(e, self._secrets)}"
                ) from e
            tx_hash = self.w3.eth.send_raw_transaction(signer.sign_transaction(tx))

        tx_ref = Web3.to_hex(tx_hash)
        logger.info("submitted %s for %s from %s", tx_ref, fingerprint, signer.tag)
        return Submission(tx_ref=tx_ref, submitter=sender)

    def _mined(self, tx_ref: str, receipt) -> SubmissionStatus:
        block = receipt.get("blockNumber")
        confirmations = None
        if block is not None:
            try:
                latest = int(self.w3.eth.block_number)
                confirmations = max(latest - int(block) + 1, 0)
            except (requests.exceptions.RequestException, Web3Exception):
                confirmations = None
        return SubmissionStatus(
            tx_ref=tx_ref,
            state="mined",
            receipt_status="success" if receipt.get("status") == 1 else "reverted",
            block_number=int(block) if block is not None else None,
            confirmations=confirmations,
        )

    def resolve_submission(self, tx_ref: str) -> SubmissionStatus:
        with self._network("transaction lookup"):
            try:
                receipt = self.w3.eth.get_transaction_receipt(tx_ref)
            except TransactionNotFound:
                receipt = None
            if receipt is not None:
                return self._mined(tx_ref, receipt)

            try:
                self.w3.eth.get_transaction(tx_ref)
            except TransactionNotFound:
                # wrong network, never broadcast, or pruned by the node
                return SubmissionStatus(tx_ref=tx_ref, state="unknown")
            return SubmissionStatus(tx_ref=tx_ref, state="pending")

    def wait_for_receipt(self, tx_ref: str, timeout_s: float) -> Optional[SubmissionStatus]:
        with self._network("receipt wait"):
            try:
                receipt = self.w3.eth.wait_for_transaction_receipt(
                    tx_ref, timeout=timeout_s, poll_latency=RECEIPT_POLL_LATENCY_S
                )
            except TimeExhausted:
                logger.info("no receipt for %s within %.1fs", tx_ref, timeout_s)
                return None
            return self._mined(tx_ref, receipt)

    def estimate_fees(self) -> FeeEstimate:
        try:
            priority = int(self.w3.eth.max_priority_fee)
            base = self.w3.eth.get_block("latest").get("baseFeePerGas")
        except Exception as e:
            detail = sanitize_error(e, self._secrets)
            logger.warning("fee estimate unavailable: %s", detail)
            return FeeEstimate.failed(detail)

        max_fee = None
        if base is not None:
            max_fee = int(base) * BASE_FEE_MULTIPLIER_NUM // BASE_FEE_MULTIPLIER_DEN + priority
        return FeeEstimate(max_fee_per_gas=max_fee, max_priority_fee_per_gas=priority)

    def check_deployment(self) -> int:
        with self._network("bytecode lookup"):
            return len(self.w3.eth.get_code(self.address))

    def signer_balance(self, signer: SigningIdentity) -> int:
        with self._network("balance lookup"):
            return int(self.w3.eth.get_balance(signer.address))

    def close(self) -> None:
        self.contract = None
        self.w3 = None
