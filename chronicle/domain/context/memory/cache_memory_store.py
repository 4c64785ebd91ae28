from typing import Dict, Any, List, Optional
from pathlib import Path
import asyncio
import json
import structlog

from chronicle.domain.models.memory_record import MemoryRecord
from chronicle.infrastructure.storage.content_store import atomic_write

logger = structlog.get_logger(__name__)


class CacheMemoryStore:
    """Local append-only cache of ledger records keyed by cid"""

    def __init__(self, directory: Optional[str] = None):
        self.records: Dict[str, MemoryRecord] = {}
        self.directory = Path(directory) if directory else None
        self._lock = asyncio.Lock()

        if self.directory:
            self.directory.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def _load_from_disk(self) -> None:
        """Populate from previously persisted records"""

        for path in sorted(self.directory.glob("*.json")):
            cid = path.stem
            try:
                document = json.loads(path.read_text(encoding="utf-8"))
                self.records[cid] = MemoryRecord.from_document(document, cid=cid)
            except (OSError, ValueError) as e:
                logger.warning("Skipping unreadable cached record", cid=cid, error=str(e))

        logger.info("Loaded record cache", directory=str(self.directory), records=len(self.records))

    async def put(self, record: MemoryRecord) -> bool:
        """Add a record; returns False if the cid was already cached"""

        if not record.cid:
            raise ValueError("Only stored records (with a cid) can be cached")

        async with self._lock:
            if record.cid in self.records:
                return False
            if self.directory:
                path = self.directory / f"{record.cid}.json"
                blob = json.dumps(record.to_document(), ensure_ascii=False, indent=2).encode("utf-8")
                await asyncio.to_thread(atomic_write, path, blob)
            self.records[record.cid] = record
            return True

    async def get(self, cid: str) -> Optional[MemoryRecord]:
        """Get a cached record"""

        async with self._lock:
            return self.records.get(cid)

    async def contains(self, cid: str) -> bool:
        async with self._lock:
            return cid in self.records

    async def all_records(self) -> List[MemoryRecord]:
        """Snapshot of every cached record, newest first"""

        async with self._lock:
            records = list(self.records.values())
        return sorted(records, key=lambda r: r.timestamp, reverse=True)

    async def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics"""

        async with self._lock:
            genesis = sum(1 for r in self.records.values() if r.is_genesis)
            return {
                "total_records": len(self.records),
                "genesis_records": genesis,
                "persistent": self.directory is not None
            }
