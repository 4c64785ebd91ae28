from typing import List, Optional
from dataclasses import asdict, dataclass
import structlog
from langchain_core.language_models import BaseChatModel

from chronicle.domain.context.context_window import ContextWindowManager
from chronicle.domain.context.memory.cache_memory_store import CacheMemoryStore
from chronicle.domain.context.memory.vector_memory_store import VectorMemoryStore
from chronicle.domain.errors import ChronicleError
from chronicle.domain.ledger.chain_anchor import NonceSequencer
from chronicle.domain.ledger.memory_ledger import MemoryLedger
from chronicle.domain.models.workflow_state import PruningParameters
from chronicle.domain.orchestration.core.orchestrator import AgentOrchestrator
from chronicle.domain.orchestration.core.prompts import Character, WorkflowPrompts
from chronicle.domain.orchestration.decision import ChatModelDecision, DecisionCapability, create_chat_model
from chronicle.domain.tool.builtin_tools import create_default_tools
from chronicle.domain.tool.tool_executor import ToolExecutor
from chronicle.domain.tool.tool_registry import Capability, ToolRegistry
from chronicle.infrastructure.chain.chain_client import ChainClient, FileChainClient
from chronicle.infrastructure.chain.local_hash_storage import LocalHashStorage
from chronicle.infrastructure.config.settings import ChronicleSettings
from chronicle.infrastructure.resilience.retry import RetryExecutor
from chronicle.infrastructure.security.signer import HmacSigner, Signer
from chronicle.infrastructure.storage.content_store import ContentStore, FileContentStore

logger = structlog.get_logger(__name__)


@dataclass
class AgentRuntime:
    """Everything one agent process needs, wired from settings"""
    settings: ChronicleSettings
    ledger: MemoryLedger
    vector_store: VectorMemoryStore
    registry: ToolRegistry
    orchestrator: Optional[AgentOrchestrator] = None
    character_cid: Optional[str] = None

    async def aclose(self) -> None:
        await self.ledger.aclose()


def build_retry(settings: ChronicleSettings) -> RetryExecutor:
    return RetryExecutor(
        max_attempts=settings.retry_attempts,
        initial_delay=settings.retry_initial_delay,
        max_delay=settings.retry_max_delay,
        strategy=settings.retry_strategy,
    )


async def build_ledger(
    settings: ChronicleSettings,
    store: Optional[ContentStore] = None,
    chain: Optional[ChainClient] = None,
    signer: Optional[Signer] = None,
    retry: Optional[RetryExecutor] = None,
) -> MemoryLedger:
    """Create and initialize the ledger; the chain decides where the head is"""

    retry = retry or build_retry(settings)
    ledger = MemoryLedger(
        store=store or FileContentStore(settings.storage_dir),
        sequencer=NonceSequencer(chain or FileChainClient(settings.chain_path), settings.agent_id, retry),
        signer=signer or HmacSigner(settings.agent_id, settings.signing_secret),
        cache=CacheMemoryStore(settings.cache_dir),
        retry=retry,
        agent_version=settings.agent_version,
        compression=settings.compression,
        encryption_password=settings.encryption_password,
        hash_storage=LocalHashStorage(settings.hash_storage_dir),
        max_depth=settings.backfill_max_depth,
    )
    await ledger.initialize()
    return ledger


async def index_ledger(ledger: MemoryLedger, vector_store: VectorMemoryStore) -> int:
    """Load the existing chain into the similarity index"""

    if not ledger.head_cid:
        return 0

    try:
        records = await ledger.traverse(ledger.head_cid)
    except ChronicleError as e:
        logger.error("Could not index existing ledger", head_cid=ledger.head_cid, error=str(e))
        return 0

    for record in records:
        await vector_store.add(record.cid, record.payload, {"previous_cid": record.previous_cid})

    logger.info("Indexed existing memories", count=len(records))
    return len(records)


async def upload_character(ledger: MemoryLedger, character: Character) -> Optional[str]:
    """Publish the character profile to content storage; failure only logs"""

    try:
        return await ledger.upload_document(f"character-{character.name}", asdict(character))
    except ChronicleError as e:
        logger.error("Could not upload character", character=character.name, error=str(e))
        return None


async def build_runtime(
    settings: ChronicleSettings,
    store: Optional[ContentStore] = None,
    chain: Optional[ChainClient] = None,
    model: Optional[BaseChatModel] = None,
    decision: Optional[DecisionCapability] = None,
    extra_tools: Optional[List[Capability]] = None,
    with_orchestrator: bool = True,
) -> AgentRuntime:
    """Wire storage, chain, ledger, tools and the orchestrator"""

    retry = build_retry(settings)
    ledger = await build_ledger(settings, store=store, chain=chain, retry=retry)

    vector_store = VectorMemoryStore(namespace=settings.thread_prefix)
    await index_ledger(ledger, vector_store)

    registry = ToolRegistry(create_default_tools(ledger, vector_store) + list(extra_tools or []))
    runtime = AgentRuntime(settings=settings, ledger=ledger, vector_store=vector_store, registry=registry)

    if not with_orchestrator:
        return runtime

    if decision is None:
        model = model or create_chat_model(settings.model_provider, settings.model_name, settings.model_temperature)
        decision = ChatModelDecision(model, registry.tool_specs(), retry)

    prompts = WorkflowPrompts(
        character=Character(
            name=settings.character_name,
            description=settings.character_description,
            personality=settings.character_personality,
        ),
        custom_instructions=settings.custom_instructions,
        self_schedule=settings.self_schedule,
    )
    runtime.character_cid = await upload_character(ledger, prompts.character)
    runtime.orchestrator = AgentOrchestrator(
        decision=decision,
        tool_executor=ToolExecutor(registry),
        context_window=ContextWindowManager(decision, prompts),
        prompts=prompts,
        pruning=PruningParameters(
            max_history_before_summary=settings.max_history_before_summary,
            max_retained_queue_size=settings.max_retained_queue_size,
        ),
        max_steps=settings.max_steps,
        step_retries=settings.step_retries,
        thread_prefix=settings.thread_prefix,
    )

    logger.info("Agent runtime ready", agent_id=settings.agent_id, tools=[t.name for t in registry.get_available_tools()])
    return runtime
