from typing import Dict, Any, List
from datetime import datetime, timezone
import structlog

from chronicle.domain.context.memory.vector_memory_store import VectorMemoryStore
from chronicle.domain.ledger.memory_ledger import MemoryLedger
from chronicle.domain.tool.tool_registry import Capability

logger = structlog.get_logger(__name__)


def create_save_experience_tool(ledger: MemoryLedger, vector_store: VectorMemoryStore) -> Capability:
    """Permanent storage of significant experiences"""

    async def save_experience(args: Dict[str, Any]) -> Dict[str, Any]:
        data = args["data"]
        result = await ledger.append(data)
        await vector_store.add(result.cid, data, {"previous_cid": result.previous_cid})
        logger.info("Experience saved", cid=result.cid, previous_cid=result.previous_cid)
        return {
            "success": True,
            "cid": result.cid,
            "previous_cid": result.previous_cid or None,
        }

    return Capability(
        name="save_experience",
        description=(
            "Save an experience to permanent, tamper-evident storage. Use after completing a "
            "significant action or learning a lesson. Include timestamps, IDs, reasoning and full context."
        ),
        handler=save_experience,
        input_schema={
            "type": "object",
            "properties": {
                "data": {
                    "type": "object",
                    "description": "The experience to save, as structured data."
                }
            },
            "required": ["data"],
            "additionalProperties": False
        },
    )


def create_search_memory_tool(vector_store: VectorMemoryStore) -> Capability:
    """Similarity search over saved experiences"""

    async def search_memory(args: Dict[str, Any]) -> List[Dict[str, Any]]:
        matches = await vector_store.search(args["query"], limit=args.get("limit", 5))
        return [{"cid": m["cid"], "score": m["score"], "payload": m["payload"]} for m in matches]

    return Capability(
        name="search_memory",
        description="Search previously saved experiences and return the most similar ones.",
        handler=search_memory,
        input_schema={
            "type": "object",
            "properties": {
                "query": {"type": "string", "minLength": 1},
                "limit": {"type": "integer", "minimum": 1, "maximum": 50, "default": 5}
            },
            "required": ["query"],
            "additionalProperties": False
        },
    )


def create_get_current_time_tool() -> Capability:
    async def get_current_time(args: Dict[str, Any]) -> Dict[str, Any]:
        now = datetime.now(timezone.utc)
        return {"iso": now.isoformat(), "unix": int(now.timestamp())}

    return Capability(
        name="get_current_time",
        description="Get the current date and time in UTC. This is reliable.",
        handler=get_current_time,
        input_schema={"type": "object", "properties": {}, "additionalProperties": False},
    )


def create_default_tools(ledger: MemoryLedger, vector_store: VectorMemoryStore) -> List[Capability]:
    return [
        create_save_experience_tool(ledger, vector_store),
        create_search_memory_tool(vector_store),
        create_get_current_time_tool(),
    ]
