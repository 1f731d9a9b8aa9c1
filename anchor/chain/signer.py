# anchor/chain/signer.py
import re

from eth_account import Account

from anchor.core.errors import ConfigurationError

_KEY_RE = re.compile(r"^0x[0-9a-fA-F]{64}$")


class SigningIdentity:
    """
    Secret material that authorizes writes.
    Only the derived address and a truncated tag are ever exposed.
    """

    def __init__(self, private_key: str):
        self._account = Account.from_key(private_key)

    @classmethod
    def from_hex(cls, text: str) -> "SigningIdentity":
        key = (text or "").strip()
        if key and not key.startswith("0x"):
            key = "0x" + key
        if not _KEY_RE.match(key):
            raise ConfigurationError("Missing or invalid signing key (must be 0x + 64 hex)")
        return cls(key)

    @property
    def address(self) -> str:
        return self._account.address

    @property
    def tag(self) -> str:
        """Truncated address for diagnostics, e.g. 0x1234…abcd."""
        return f"{self.address[:6]}…{self.address[-4:]}"

    def sign_transaction(self, tx: dict) -> bytes:
        signed = self._account.sign_transaction(tx)
        return bytes(signed.raw_transaction)

    def __repr__(self) -> str:
        return f"SigningIdentity({self.tag})"

    __str__ = __repr__
