import json

import pytest
from langchain_core.messages import HumanMessage

from chronicle.application.bootstrap import build_runtime
from chronicle.infrastructure.chain.chain_client import InMemoryChainClient
from chronicle.infrastructure.config.settings import ChronicleSettings
from chronicle.infrastructure.storage.content_store import InMemoryContentStore

from tests.conftest import ScriptedDecision, call_tool, stop

pytestmark = pytest.mark.anyio


def _settings(tmp_path, **overrides):
    return ChronicleSettings(
        agent_id="bootstrap-agent",
        signing_secret="s3cret",
        storage_dir=str(tmp_path / "storage"),
        cache_dir=str(tmp_path / "cache"),
        hash_storage_dir=str(tmp_path / "hashes"),
        chain_path=str(tmp_path / "chain.json"),
        retry_initial_delay=0,
        **overrides,
    )


def test_settings_read_prefixed_environment(monkeypatch):
    monkeypatch.setenv("CHRONICLE_MAX_STEPS", "7")
    monkeypatch.setenv("CHRONICLE_RETRY_STRATEGY", "fixed")

    settings = ChronicleSettings()

    assert settings.max_steps == 7
    assert settings.retry_strategy == "fixed"
    assert settings.max_history_before_summary == 30
    assert settings.max_retained_queue_size == 50


async def test_runtime_wires_tools_and_runs_a_workflow(tmp_path):
    decision = ScriptedDecision(steps=[
        call_tool("save_experience", {"data": {"text": "first boot"}}),
        stop("saved"),
    ])
    runtime = await build_runtime(_settings(tmp_path, max_steps=5), decision=decision)

    assert {t.name for t in runtime.registry.get_available_tools()} == {
        "save_experience", "search_memory", "get_current_time"
    }
    report = await runtime.orchestrator.run_workflow([HumanMessage(content="boot")])
    await runtime.aclose()

    assert not report.failed
    assert runtime.ledger.head_cid is not None
    assert (tmp_path / "chain.json").exists()


async def test_restart_indexes_existing_memories(tmp_path):
    store = InMemoryContentStore()
    chain = InMemoryChainClient()

    first = await build_runtime(_settings(tmp_path), store=store, chain=chain, with_orchestrator=False)
    await first.ledger.append({"text": "remember the lighthouse"})
    await first.ledger.append({"text": "fed the cat"})
    await first.aclose()

    second = await build_runtime(_settings(tmp_path), store=store, chain=chain, with_orchestrator=False)

    assert second.orchestrator is None
    assert await second.vector_store.count() == 2
    matches = await second.vector_store.search("lighthouse")
    assert matches[0]["payload"] == {"text": "remember the lighthouse"}
    await second.aclose()


async def test_character_profile_is_uploaded_at_startup(tmp_path):
    store = InMemoryContentStore()
    runtime = await build_runtime(
        _settings(tmp_path, character_name="Wren"),
        store=store,
        chain=InMemoryChainClient(),
        decision=ScriptedDecision(),
    )

    profile = json.loads(await store.download(runtime.character_cid))
    assert profile["name"] == "Wren"
    assert store.names[runtime.character_cid].startswith("character-Wren-")
    assert runtime.ledger.head_cid is None
    await runtime.aclose()
