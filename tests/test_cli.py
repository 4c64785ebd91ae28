import json

import pytest

from chronicle.__main__ import main


@pytest.fixture
def data_env(tmp_path, monkeypatch):
    monkeypatch.setenv("CHRONICLE_AGENT_ID", "cli-agent")
    monkeypatch.setenv("CHRONICLE_SIGNING_SECRET", "cli-secret")
    monkeypatch.setenv("CHRONICLE_STORAGE_DIR", str(tmp_path / "storage"))
    monkeypatch.setenv("CHRONICLE_CACHE_DIR", str(tmp_path / "cache"))
    monkeypatch.setenv("CHRONICLE_HASH_STORAGE_DIR", str(tmp_path / "hashes"))
    monkeypatch.setenv("CHRONICLE_CHAIN_PATH", str(tmp_path / "chain.json"))
    monkeypatch.setenv("CHRONICLE_LOG_FORMAT", "console")
    monkeypatch.setenv("CHRONICLE_LOG_LEVEL", "WARNING")
    return tmp_path


def test_verify_on_fresh_ledger(data_env, capsys):
    assert main(["verify"]) == 0

    out = capsys.readouterr().out
    result = json.loads(out[out.index("{"):])
    assert result["consistent"] is True
    assert result["agent_id"] == "cli-agent"


def test_unknown_command_exits():
    with pytest.raises(SystemExit):
        main(["explode"])
