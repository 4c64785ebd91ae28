from typing import Dict, List, Optional, Protocol
from pydantic import BaseModel, Field
from datetime import datetime, timezone
from pathlib import Path
import asyncio
import hashlib
import json
import structlog

from chronicle.domain.errors import TransientNetworkError
from chronicle.infrastructure.storage.content_store import atomic_write

logger = structlog.get_logger(__name__)


class TransactionHandle(BaseModel):
    """Receipt for an accepted anchor submission"""
    tx_hash: str
    agent_id: str
    digest: str
    nonce: int
    submitted_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @staticmethod
    def derive_tx_hash(agent_id: str, digest: str, nonce: int) -> str:
        return "0x" + hashlib.sha256(f"{agent_id}:{digest}:{nonce}".encode("utf-8")).hexdigest()


class ChainClient(Protocol):
    """Chain submission collaborator"""

    async def submit(self, agent_id: str, digest: str, nonce: int) -> TransactionHandle:
        ...

    async def get_last_digest(self, agent_id: str) -> Optional[str]:
        ...

    async def get_nonce(self, agent_id: str) -> int:
        ...


class NonceRejected(TransientNetworkError):
    """The chain refused a nonce that is not the next expected one"""


class InMemoryChainClient:
    """In-process stand-in for the memory anchoring contract"""

    def __init__(self):
        self.last_digests: Dict[str, str] = {}
        self.nonces: Dict[str, int] = {}
        self.transactions: List[TransactionHandle] = []
        self._lock = asyncio.Lock()

    async def submit(self, agent_id: str, digest: str, nonce: int) -> TransactionHandle:
        """Record ``digest`` as the agent's latest anchored hash"""

        async with self._lock:
            expected = self.nonces.get(agent_id, 0)
            if nonce != expected:
                raise NonceRejected(f"Nonce {nonce} rejected for {agent_id}; expected {expected}")

            tx_hash = TransactionHandle.derive_tx_hash(agent_id, digest, nonce)
            handle = TransactionHandle(tx_hash=tx_hash, agent_id=agent_id, digest=digest, nonce=nonce)

            self.last_digests[agent_id] = digest
            self.nonces[agent_id] = nonce + 1
            self.transactions.append(handle)

        logger.debug("Anchor accepted", agent_id=agent_id, nonce=nonce, tx_hash=tx_hash)
        return handle

    async def get_last_digest(self, agent_id: str) -> Optional[str]:
        """Latest anchored digest, or None before the first anchor"""

        async with self._lock:
            return self.last_digests.get(agent_id)

    async def get_nonce(self, agent_id: str) -> int:
        """Next nonce the chain will accept for ``agent_id``"""

        async with self._lock:
            return self.nonces.get(agent_id, 0)


class FileChainClient(InMemoryChainClient):
    """Chain stand-in persisted to a JSON file, so anchors survive restarts"""

    def __init__(self, path: str):
        super().__init__()
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        if self.path.exists():
            state = json.loads(self.path.read_text(encoding="utf-8"))
            self.last_digests = dict(state.get("last_digests", {}))
            self.nonces = {agent: int(nonce) for agent, nonce in state.get("nonces", {}).items()}

    async def submit(self, agent_id: str, digest: str, nonce: int) -> TransactionHandle:
        handle = await super().submit(agent_id, digest, nonce)
        async with self._lock:
            state = {"last_digests": self.last_digests, "nonces": self.nonces}
            blob = json.dumps(state, indent=2, sort_keys=True).encode("utf-8")
            await asyncio.to_thread(atomic_write, self.path, blob)
        return handle
