from typing import Any, Awaitable, Callable, List, Optional
import asyncio
import structlog
from langchain_core.messages import HumanMessage

from chronicle.domain.models.workflow_state import FinalReport
from chronicle.domain.orchestration.core.orchestrator import AgentOrchestrator

logger = structlog.get_logger(__name__)


class WorkflowScheduler:
    """Runs workflows back to back, letting each run schedule the next"""

    def __init__(
        self,
        orchestrator: AgentOrchestrator,
        initial_prompt: str,
        default_interval_seconds: float = 3600.0,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
    ):
        self.orchestrator = orchestrator
        self.initial_prompt = initial_prompt
        self.default_interval_seconds = default_interval_seconds
        self._sleep = sleep or asyncio.sleep

    def next_message(self, report: FinalReport) -> str:
        """Prompt for the following run: the report plus its own instructions"""
        return f"{report.summary}\n{report.next_prompt or self.initial_prompt}"

    def next_delay(self, report: FinalReport) -> float:
        if report.seconds_until_next is not None:
            return report.seconds_until_next
        return self.default_interval_seconds

    async def run_forever(self, max_runs: Optional[int] = None) -> List[FinalReport]:
        """Loop until cancelled, or until ``max_runs`` runs have finished"""

        reports: List[FinalReport] = []
        message = self.initial_prompt

        while max_runs is None or len(reports) < max_runs:
            report = await self.orchestrator.run_workflow([HumanMessage(content=message)])
            reports.append(report)

            message = self.next_message(report)
            delay = self.next_delay(report)
            logger.info(
                "Workflow execution completed",
                run_id=report.run_id,
                failed=report.failed,
                next_run_in_minutes=round(delay / 60, 2),
                next_workflow_prompt=message
            )

            if max_runs is not None and len(reports) >= max_runs:
                break
            await self._sleep(delay)

        return reports
