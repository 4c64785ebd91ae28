"""
Hash-chained memory ledger.

Each record names its predecessor by cid, is signed by the agent, lives in
content-addressable storage, and has its digest anchored on chain. The ledger
head is the cid whose digest the chain last accepted; every append links to it.

Failure handling:
    - Upload failures surface as ``RetryExhausted`` and nothing is recorded.
    - Anchor failures surface as ``AnchorFailure``. The stored record stays in
      the cache and is tracked as orphaned; the head does not move, so the
      next append links to the last anchored record and ``verify_chain``
      reports the divergence until then.
"""
from typing import Dict, Any, List, Optional
from datetime import datetime, timezone
import asyncio
import json
import structlog

from chronicle.domain.context.memory.cache_memory_store import CacheMemoryStore
from chronicle.domain.errors import AnchorFailure, CorruptChain, RecordNotFound
from chronicle.domain.ledger.backfill import BackfillScheduler
from chronicle.domain.ledger.chain_anchor import NonceSequencer
from chronicle.domain.ledger.codec import canonical_json, cid_from_digest, digest_from_cid
from chronicle.domain.models.memory_record import AppendResult, ChainVerification, MemoryRecord
from chronicle.infrastructure.chain.local_hash_storage import LocalHashStorage
from chronicle.infrastructure.observability.logging import agent_logger
from chronicle.infrastructure.resilience.retry import RetryExecutor
from chronicle.infrastructure.security.signer import Signer
from chronicle.infrastructure.storage.content_store import ContentStore

logger = structlog.get_logger(__name__)

RESERVED_KEYS = frozenset({"previousCid", "signature", "timestamp", "agentVersion"})


class MemoryLedger:
    """Builds, signs, uploads and anchors experience records"""

    def __init__(
        self,
        store: ContentStore,
        sequencer: NonceSequencer,
        signer: Signer,
        cache: CacheMemoryStore,
        retry: RetryExecutor,
        agent_version: str,
        compression: bool = True,
        encryption_password: Optional[str] = None,
        hash_storage: Optional[LocalHashStorage] = None,
        max_depth: int = 1000,
    ):
        self.store = store
        self.sequencer = sequencer
        self.signer = signer
        self.cache = cache
        self.retry = retry
        self.agent_version = agent_version
        self.compression = compression
        self.encryption_password = encryption_password
        self.hash_storage = hash_storage
        self.max_depth = max_depth
        self.backfill = BackfillScheduler()

        self._head_cid: Optional[str] = None
        self._unanchored_head: Optional[str] = None
        self._orphaned: List[str] = []
        self._append_lock = asyncio.Lock()

    @property
    def agent_id(self) -> str:
        return self.sequencer.agent_id

    @property
    def head_cid(self) -> Optional[str]:
        """cid of the last anchored record"""
        return self._head_cid

    @property
    def orphaned_cids(self) -> List[str]:
        """Records that were stored but never anchored"""
        return list(self._orphaned)

    async def initialize(self) -> Optional[str]:
        """Load the head from the chain and reconcile the local hash file"""

        anchor = await self.sequencer.initialize()
        if anchor.last_anchored_hash:
            self._head_cid = cid_from_digest(anchor.last_anchored_hash)

        if self.hash_storage:
            await self.hash_storage.reconcile(self.agent_id, anchor.last_anchored_hash)

        logger.info("Memory ledger ready", agent_id=self.agent_id, head_cid=self._head_cid)
        return self._head_cid

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def append(self, payload: Dict[str, Any]) -> AppendResult:
        """Store a new record linked to the current head and anchor it"""

        clashing = RESERVED_KEYS.intersection(payload)
        if clashing:
            raise ValueError(f"Payload uses reserved keys: {', '.join(sorted(clashing))}")

        async with self._append_lock:
            previous_cid = self._head_cid or ""
            timestamp = datetime.now(timezone.utc).isoformat()

            unsigned = MemoryRecord(
                payload=payload,
                previous_cid=previous_cid,
                signature="",
                timestamp=timestamp,
                agent_version=self.agent_version,
            )
            signature = self.signer.sign(canonical_json(unsigned.signing_body()))
            record = unsigned.model_copy(update={"signature": signature})

            data = json.dumps(record.to_document(), ensure_ascii=False, indent=2).encode("utf-8")
            name = f"{self.agent_id}-agent-memory-{timestamp}.json"

            logger.info("Uploading memory record", previous_cid=previous_cid, size=len(data))
            cid = await self.retry.run(
                lambda: self.store.upload(
                    data,
                    name=name,
                    compression=self.compression,
                    encryption_password=self.encryption_password,
                ),
                operation_name="Memory record upload"
            )

            stored = record.model_copy(update={"cid": cid})
            await self.cache.put(stored)
            digest = digest_from_cid(cid)

            try:
                handle = await self.sequencer.submit(digest)
            except Exception as e:
                self._orphaned.append(cid)
                self._unanchored_head = cid
                agent_logger.log_ledger_event(
                    "anchor_failed", cid=cid, previous_cid=previous_cid, details={"error": str(e)}
                )
                raise AnchorFailure(cid, previous_cid, e) from e

            self._head_cid = cid
            self._unanchored_head = None
            if self.hash_storage:
                await self.hash_storage.set(self.agent_id, digest)

        agent_logger.log_ledger_event(
            "appended", cid=cid, previous_cid=previous_cid, details={"tx_hash": handle.tx_hash}
        )
        return AppendResult(cid=cid, previous_cid=previous_cid, tx_hash=handle.tx_hash)

    async def upload_document(self, name: str, data: Dict[str, Any]) -> str:
        """Upload a standalone JSON document outside the record chain"""

        timestamp = datetime.now(timezone.utc).isoformat()
        blob = json.dumps(data, ensure_ascii=False, indent=2).encode("utf-8")
        cid = await self.retry.run(
            lambda: self.store.upload(
                blob,
                name=f"{name}-{timestamp}.json",
                compression=self.compression,
                encryption_password=self.encryption_password,
            ),
            operation_name=f"Upload {name}"
        )
        logger.info("Document uploaded", name=name, cid=cid)
        return cid

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def _download(self, cid: str) -> MemoryRecord:
        data = await self.retry.run(
            lambda: self.store.download(cid),
            operation_name=f"Download {cid}"
        )
        try:
            document = json.loads(data.decode("utf-8"))
            return MemoryRecord.from_document(document, cid=cid)
        except ValueError as e:
            raise CorruptChain(f"Record {cid} could not be decoded: {e}", cid=cid) from e

    async def fetch(self, cid: str, backfill: bool = True) -> MemoryRecord:
        """Return a record, downloading and caching it on a miss"""

        record = await self.cache.get(cid)
        if record is not None:
            return record

        record = await self._download(cid)
        await self.cache.put(record)
        logger.debug("Fetched record into cache", cid=cid, previous_cid=record.previous_cid)

        if backfill and record.previous_cid and not await self.cache.contains(record.previous_cid):
            self.backfill.schedule(record.previous_cid, self._backfill_from)

        return record

    async def _backfill_from(self, cid: str) -> int:
        """Walk back from ``cid`` filling the cache; resumes over cached gaps"""

        visited = set()
        fetched = 0
        current = cid

        while current and len(visited) < self.max_depth:
            if current in visited:
                raise CorruptChain(f"Cycle detected at {current}", cid=current)
            visited.add(current)

            record = await self.cache.get(current)
            if record is None:
                record = await self._download(current)
                await self.cache.put(record)
                fetched += 1
            current = record.previous_cid

        return fetched

    async def traverse(self, cid: str, max_depth: Optional[int] = None) -> List[MemoryRecord]:
        """Records from ``cid`` back toward genesis, newest first"""

        depth = self.max_depth if max_depth is None else max_depth
        visited = set()
        records: List[MemoryRecord] = []
        current = cid

        while current and len(records) < depth:
            if current in visited:
                raise CorruptChain(f"Cycle detected at {current}", cid=current)
            visited.add(current)

            try:
                record = await self.fetch(current, backfill=False)
            except RecordNotFound as e:
                if not records:
                    raise
                raise CorruptChain(f"Unresolvable ancestor {current}", cid=current) from e

            records.append(record)
            current = record.previous_cid

        return records

    # ------------------------------------------------------------------
    # Integrity
    # ------------------------------------------------------------------

    def signature_valid(self, record: MemoryRecord) -> bool:
        return self.signer.verify(canonical_json(record.signing_body()), record.signature)

    async def verify_chain(self, agent_id: Optional[str] = None) -> ChainVerification:
        """Check signatures along the local chain and compare it with the anchor"""

        if agent_id is not None and agent_id != self.agent_id:
            raise ValueError(f"This ledger belongs to {self.agent_id}, not {agent_id}")

        anchored = self.sequencer.anchor.last_anchored_hash
        head = self._unanchored_head or self._head_cid

        if head is None:
            consistent = anchored is None
            result = ChainVerification(
                consistent=consistent,
                agent_id=self.agent_id,
                anchored_digest=anchored,
                details="Empty chain" if consistent else "Chain has an anchor but no local head",
            )
            agent_logger.log_ledger_event("verified", details=result.model_dump())
            return result

        records = await self.traverse(head)
        invalid = [r.cid for r in records if not self.signature_valid(r)]
        local_digest = digest_from_cid(head)

        problems = []
        if local_digest != anchored:
            problems.append(f"local head {head} does not match the anchored hash")
        if invalid:
            problems.append(f"{len(invalid)} record(s) failed signature verification")
        if not records[-1].is_genesis:
            walk_note = f"walk stopped at depth {len(records)} before genesis"
        else:
            walk_note = "walk reached genesis"

        result = ChainVerification(
            consistent=not problems,
            agent_id=self.agent_id,
            head_cid=head,
            anchored_digest=anchored,
            local_digest=local_digest,
            records_checked=len(records),
            invalid_signatures=invalid,
            orphaned_cids=self.orphaned_cids,
            details="; ".join(problems + [walk_note]),
        )

        if result.consistent:
            agent_logger.log_ledger_event("verified", cid=head, details={"records": len(records)})
        else:
            logger.warning("Ledger diverges from chain anchor", head_cid=head, details=result.details)
        return result

    async def aclose(self) -> None:
        await self.backfill.aclose()
