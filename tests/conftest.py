import json
from typing import Any, Callable, List, Optional, Union

import pytest
from langchain_core.messages import AIMessage, BaseMessage

from chronicle.domain.context.context_window import ContextWindowManager
from chronicle.domain.context.memory.cache_memory_store import CacheMemoryStore
from chronicle.domain.context.memory.vector_memory_store import VectorMemoryStore
from chronicle.domain.errors import TransientNetworkError
from chronicle.domain.ledger.chain_anchor import NonceSequencer
from chronicle.domain.ledger.memory_ledger import MemoryLedger
from chronicle.domain.models.workflow_state import PruningParameters
from chronicle.domain.orchestration.core.orchestrator import AgentOrchestrator
from chronicle.domain.orchestration.core.prompts import Character, WorkflowPrompts
from chronicle.domain.tool.builtin_tools import create_default_tools
from chronicle.domain.tool.tool_executor import ToolExecutor
from chronicle.domain.tool.tool_registry import ToolRegistry
from chronicle.infrastructure.chain.chain_client import InMemoryChainClient, TransactionHandle
from chronicle.infrastructure.resilience.retry import RetryExecutor
from chronicle.infrastructure.security.signer import HmacSigner
from chronicle.infrastructure.storage.content_store import InMemoryContentStore

AGENT_ID = "test-agent"


async def _no_sleep(_delay: float) -> None:
    return None


def stop(reason: str = "done") -> AIMessage:
    return AIMessage(content=json.dumps({"shouldStop": True, "reason": reason}))


def keep_going(reason: str = "working") -> AIMessage:
    return AIMessage(content=json.dumps({"shouldStop": False, "reason": reason}))


def call_tool(name: str, args: Optional[dict] = None, call_id: str = "call-1") -> AIMessage:
    return AIMessage(content="", tool_calls=[{"name": name, "args": args or {}, "id": call_id}])


def report(summary: str = "did things", **extra: Any) -> AIMessage:
    return AIMessage(content=json.dumps({"workflowSummary": summary, **extra}))


Step = Union[AIMessage, BaseException, Callable[[List[BaseMessage]], AIMessage]]


class ScriptedDecision:
    """Fake decision capability.

    Tool-enabled calls pop from ``steps``; an exception in the script is raised.
    Summary calls return ``summary_text``; end-of-run calls return ``final``.
    Once the script runs out, ``default`` is returned.
    """

    def __init__(self, steps=None, summary_text="short summary", final=None, default=None):
        self.steps: List[Step] = list(steps or [])
        self.summary_text = summary_text
        self.final = final if final is not None else report()
        self.default = default if default is not None else stop("script exhausted")
        self.input_calls: List[List[BaseMessage]] = []
        self.summary_calls: List[List[BaseMessage]] = []
        self.finish_calls: List[List[BaseMessage]] = []

    async def invoke(self, messages: List[BaseMessage], *, use_tools: bool = True) -> AIMessage:
        if not use_tools:
            if "self-schedule" in messages[0].content:
                self.finish_calls.append(messages)
                if isinstance(self.final, BaseException):
                    raise self.final
                return self.final
            self.summary_calls.append(messages)
            return AIMessage(content=self.summary_text)

        self.input_calls.append(messages)
        step = self.steps.pop(0) if self.steps else self.default
        if isinstance(step, BaseException):
            raise step
        if callable(step) and not isinstance(step, AIMessage):
            return step(messages)
        return step


class FlakyChainClient(InMemoryChainClient):
    """Chain that rejects the next ``failures`` submissions"""

    def __init__(self, failures: int = 0):
        super().__init__()
        self.failures = failures
        self.attempts = 0

    async def submit(self, agent_id: str, digest: str, nonce: int) -> TransactionHandle:
        self.attempts += 1
        if self.failures > 0:
            self.failures -= 1
            raise TransientNetworkError("rpc unavailable")
        return await super().submit(agent_id, digest, nonce)


class LostReceiptChainClient(InMemoryChainClient):
    """Chain that accepts the next ``lost`` submissions but drops their receipts"""

    def __init__(self, lost: int = 0):
        super().__init__()
        self.lost = lost

    async def submit(self, agent_id: str, digest: str, nonce: int) -> TransactionHandle:
        handle = await super().submit(agent_id, digest, nonce)
        if self.lost > 0:
            self.lost -= 1
            raise TransientNetworkError("timed out waiting for receipt")
        return handle


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def retry():
    return RetryExecutor(max_attempts=3, initial_delay=0.01, sleep=_no_sleep)


@pytest.fixture
def store():
    return InMemoryContentStore()


@pytest.fixture
def chain():
    return InMemoryChainClient()


@pytest.fixture
def signer():
    return HmacSigner(AGENT_ID, "secret")


def make_ledger(store, chain, signer, retry, cache=None, max_depth=1000) -> MemoryLedger:
    return MemoryLedger(
        store=store,
        sequencer=NonceSequencer(chain, AGENT_ID, retry),
        signer=signer,
        cache=cache or CacheMemoryStore(),
        retry=retry,
        agent_version="2.0.0",
        max_depth=max_depth,
    )


@pytest.fixture
async def ledger(store, chain, signer, retry):
    ledger = make_ledger(store, chain, signer, retry)
    await ledger.initialize()
    yield ledger
    await ledger.aclose()


@pytest.fixture
def vector_store():
    return VectorMemoryStore()


@pytest.fixture
def prompts():
    return WorkflowPrompts(
        character=Character(name="Tester", description="A test agent.", personality="Terse."),
        self_schedule=True,
    )


def make_orchestrator(decision, registry, prompts, max_steps=10, pruning=None, step_retries=1):
    return AgentOrchestrator(
        decision=decision,
        tool_executor=ToolExecutor(registry),
        context_window=ContextWindowManager(decision, prompts),
        prompts=prompts,
        pruning=pruning or PruningParameters(),
        max_steps=max_steps,
        step_retries=step_retries,
    )


@pytest.fixture
def registry(ledger, vector_store):
    return ToolRegistry(create_default_tools(ledger, vector_store))
