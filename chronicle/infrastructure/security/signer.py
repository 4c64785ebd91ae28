"""
Record signer.

The ledger only needs ``sign`` and ``verify`` tied to one agent identity; key
management lives outside this process. ``HmacSigner`` is the bundled
implementation, keyed by a shared secret from configuration.
"""

from typing import Protocol
import hashlib
import hmac


class Signer(Protocol):
    """Signs ledger records on behalf of one agent identity"""

    agent_id: str

    def sign(self, data: bytes) -> str:
        ...

    def verify(self, data: bytes, signature: str) -> bool:
        ...


class HmacSigner:
    """HMAC-SHA256 signer bound to a single agent identity"""

    def __init__(self, agent_id: str, secret: str):
        if not secret:
            raise ValueError("Signing secret must not be empty")
        self.agent_id = agent_id
        self._key = hashlib.sha256(f"{agent_id}:{secret}".encode("utf-8")).digest()

    def sign(self, data: bytes) -> str:
        """Return a hex signature over ``data``"""
        return hmac.new(self._key, data, hashlib.sha256).hexdigest()

    def verify(self, data: bytes, signature: str) -> bool:
        """Constant-time check of ``signature`` against ``data``"""
        return hmac.compare_digest(self.sign(data), signature or "")
