from typing import Optional
from dataclasses import dataclass
import asyncio
import structlog

from chronicle.infrastructure.chain.chain_client import ChainClient, NonceRejected, TransactionHandle
from chronicle.infrastructure.resilience.retry import RetryExecutor

logger = structlog.get_logger(__name__)


@dataclass
class ChainAnchor:
    """Process-wide view of one agent's on-chain commitment"""
    agent_id: str
    last_anchored_hash: Optional[str] = None
    last_nonce: Optional[int] = None


class NonceSequencer:
    """Serializes anchor submissions for one agent identity.

    Each submission takes the next nonce and only advances the anchor once
    the chain accepts it. A failed submission leaves the nonce unused for the
    next caller. When the chain rejects a nonce the sequencer re-reads the
    chain before the next attempt, so a lost receipt cannot wedge it.
    """

    def __init__(self, chain: ChainClient, agent_id: str, retry: RetryExecutor):
        self.chain = chain
        self.retry = retry
        self.anchor = ChainAnchor(agent_id=agent_id)
        self._lock = asyncio.Lock()
        self._initialized = False

    @property
    def agent_id(self) -> str:
        return self.anchor.agent_id

    async def initialize(self) -> ChainAnchor:
        """Read the anchor from the chain, the source of truth"""

        async with self._lock:
            digest = await self.retry.run(
                lambda: self.chain.get_last_digest(self.agent_id),
                operation_name="Read last memory hash"
            )
            next_nonce = await self.retry.run(
                lambda: self.chain.get_nonce(self.agent_id),
                operation_name="Read account nonce"
            )
            self.anchor.last_anchored_hash = digest
            self.anchor.last_nonce = next_nonce - 1 if next_nonce > 0 else None
            self._initialized = True

        logger.info(
            "Chain anchor loaded",
            agent_id=self.agent_id,
            last_anchored_hash=self.anchor.last_anchored_hash,
            last_nonce=self.anchor.last_nonce
        )
        return self.anchor

    def _next_nonce(self) -> int:
        return 0 if self.anchor.last_nonce is None else self.anchor.last_nonce + 1

    async def _resync(self, digest: str, nonce: int) -> Optional[TransactionHandle]:
        """Re-read the chain after a rejected nonce.

        Returns a handle when ``digest`` already landed under an earlier attempt
        whose receipt was lost. Otherwise moves ``last_nonce`` forward to the
        chain's value; it is never moved back.
        """

        chain_digest = await self.chain.get_last_digest(self.agent_id)
        chain_nonce = await self.chain.get_nonce(self.agent_id)

        if chain_digest == digest:
            logger.warning(
                "Anchor already accepted, receipt was lost",
                agent_id=self.agent_id,
                nonce=chain_nonce - 1
            )
            return TransactionHandle(
                tx_hash=TransactionHandle.derive_tx_hash(self.agent_id, digest, chain_nonce - 1),
                agent_id=self.agent_id,
                digest=digest,
                nonce=chain_nonce - 1
            )

        if chain_nonce > self._next_nonce():
            logger.warning(
                "Nonce behind chain, moving forward",
                agent_id=self.agent_id,
                rejected_nonce=nonce,
                chain_nonce=chain_nonce
            )
            self.anchor.last_nonce = chain_nonce - 1
        return None

    async def submit(self, digest: str) -> TransactionHandle:
        """Anchor ``digest`` under the next nonce; raises RetryExhausted on failure"""

        if not self._initialized:
            await self.initialize()

        async with self._lock:
            async def attempt() -> TransactionHandle:
                try:
                    return await self.chain.submit(self.agent_id, digest, self._next_nonce())
                except NonceRejected:
                    handle = await self._resync(digest, self._next_nonce())
                    if handle is None:
                        raise
                    return handle

            handle = await self.retry.run(attempt, operation_name="Memory hash submission")
            self.anchor.last_nonce = handle.nonce
            self.anchor.last_anchored_hash = digest

        logger.info("Memory hash anchored", agent_id=self.agent_id, nonce=handle.nonce, tx_hash=handle.tx_hash)
        return handle
