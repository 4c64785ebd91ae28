from typing import Optional
from pathlib import Path
import asyncio
import structlog

from chronicle.infrastructure.storage.content_store import atomic_write

logger = structlog.get_logger(__name__)


class LocalHashStorage:
    """Keeps the last anchored memory hash per agent on local disk"""

    def __init__(self, root: str):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, agent_id: str) -> Path:
        return self.root / f"{agent_id}.last_memory_hash"

    async def get(self, agent_id: str) -> Optional[str]:
        """Read the stored hash, if any"""

        path = self._path(agent_id)
        if not path.exists():
            return None
        value = (await asyncio.to_thread(path.read_text, "utf-8")).strip()
        return value or None

    async def set(self, agent_id: str, digest: str) -> None:
        """Overwrite the stored hash"""

        await asyncio.to_thread(atomic_write, self._path(agent_id), digest.encode("utf-8"))

    async def reconcile(self, agent_id: str, chain_digest: Optional[str]) -> bool:
        """Compare the local hash with the chain and adopt the chain value.

        Returns True when both agree (or neither has a value).
        """

        local_digest = await self.get(agent_id)
        if local_digest == chain_digest:
            logger.info("Local memory hash matches chain", agent_id=agent_id, digest=chain_digest)
            return True

        logger.warning(
            "Local memory hash differs from chain",
            agent_id=agent_id,
            local_digest=local_digest,
            chain_digest=chain_digest
        )
        if chain_digest:
            await self.set(agent_id, chain_digest)
        return False
