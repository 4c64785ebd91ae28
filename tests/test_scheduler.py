from unittest.mock import AsyncMock, MagicMock

import pytest

from chronicle.application.scheduler import WorkflowScheduler
from chronicle.domain.models.workflow_state import FinalReport

pytestmark = pytest.mark.anyio


def _report(**fields):
    return FinalReport(run_id="run", summary=fields.pop("summary", "did a thing"), **fields)


async def test_each_run_feeds_the_next():
    orchestrator = MagicMock()
    orchestrator.run_workflow = AsyncMock(side_effect=[
        _report(summary="first", next_prompt="Instructions for this workflow: second", seconds_until_next=60),
        _report(summary="second"),
    ])
    sleep = AsyncMock()
    scheduler = WorkflowScheduler(orchestrator, initial_prompt="begin", default_interval_seconds=900, sleep=sleep)

    reports = await scheduler.run_forever(max_runs=2)

    assert len(reports) == 2
    first_call, second_call = orchestrator.run_workflow.await_args_list
    assert first_call.args[0][0].content == "begin"
    assert second_call.args[0][0].content == "first\nInstructions for this workflow: second"
    sleep.assert_awaited_once_with(60)


def test_delay_falls_back_to_default_interval():
    scheduler = WorkflowScheduler(MagicMock(), initial_prompt="begin", default_interval_seconds=900)

    assert scheduler.next_delay(_report()) == 900
    assert scheduler.next_delay(_report(seconds_until_next=0)) == 0


def test_missing_next_prompt_reuses_initial_prompt():
    scheduler = WorkflowScheduler(MagicMock(), initial_prompt="begin")

    assert scheduler.next_message(_report(summary="ran")) == "ran\nbegin"


async def test_failed_runs_keep_the_loop_going():
    orchestrator = MagicMock()
    orchestrator.run_workflow = AsyncMock(side_effect=[
        _report(summary="Workflow failed: RunawayWorkflow", failed=True, error="RunawayWorkflow"),
        _report(summary="fine"),
    ])
    scheduler = WorkflowScheduler(orchestrator, initial_prompt="begin", sleep=AsyncMock())

    reports = await scheduler.run_forever(max_runs=2)

    assert [r.failed for r in reports] == [True, False]
