from typing import Any, Dict, List, Optional
import json
import math
from fastapi import APIRouter, HTTPException, Query, Request
import structlog

from chronicle.domain.errors import ChronicleError, RecordNotFound
from chronicle.domain.ledger.memory_ledger import MemoryLedger
from chronicle.domain.models.memory_record import MemoryRecord

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/records", tags=["records"])


def get_ledger(request: Request) -> MemoryLedger:
    return request.app.state.ledger


def _serialize(record: MemoryRecord) -> Dict[str, Any]:
    return {
        "cid": record.cid,
        "previousCid": record.previous_cid or None,
        "timestamp": record.timestamp,
        "agentVersion": record.agent_version,
        "content": record.to_document(),
    }


def _matches(record: MemoryRecord, type_: Optional[str], search: Optional[str], author: Optional[str]) -> bool:
    payload = record.payload
    if type_ and payload.get("type") != type_:
        return False
    if author and str(payload.get("author", "")).lower() != author.lower():
        return False
    if search:
        haystack = json.dumps(payload, ensure_ascii=False, default=str).lower()
        if search.lower() not in haystack:
            return False
    return True


@router.get("")
async def list_records(
    request: Request,
    page: int = Query(1),
    limit: int = Query(10),
    type: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    author: Optional[str] = Query(None),
):
    """Paginated, filtered view of locally cached records"""

    if page < 1 or limit < 1 or limit > 100:
        raise HTTPException(
            status_code=400,
            detail="Invalid pagination parameters. Page must be >= 1 and limit must be between 1 and 100"
        )

    ledger = get_ledger(request)
    records: List[MemoryRecord] = [
        r for r in await ledger.cache.all_records() if _matches(r, type, search, author)
    ]

    total = len(records)
    start = (page - 1) * limit
    response: Dict[str, Any] = {
        "data": [_serialize(r) for r in records[start:start + limit]],
        "pagination": {
            "total": total,
            "page": page,
            "limit": limit,
            "totalPages": math.ceil(total / limit) if total else 0
        }
    }
    if total == 0:
        response["message"] = "No memory found"
    return response


@router.get("/{cid}")
async def get_record(cid: str, request: Request):
    """Single record; a cache miss downloads, persists and backfills ancestors"""

    ledger = get_ledger(request)

    try:
        record = await ledger.fetch(cid)
    except RecordNotFound:
        raise HTTPException(status_code=404, detail="Memory not found")
    except ChronicleError as e:
        logger.error("Error fetching memory", cid=cid, error=str(e))
        raise HTTPException(status_code=500, detail="Failed to fetch memory")

    return _serialize(record)
