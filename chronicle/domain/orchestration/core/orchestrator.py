from typing import Dict, Any, List, Optional, Literal, Callable, Awaitable
from datetime import datetime, timezone
import uuid
from langgraph.graph import StateGraph, END
from langgraph.errors import GraphRecursionError
from langchain_core.exceptions import OutputParserException
from langchain_core.messages import BaseMessage
import structlog

from chronicle.domain.context.context_window import ContextWindowManager
from chronicle.domain.errors import ChronicleError, RunawayWorkflow, StructuredParseFailure
from chronicle.domain.models.workflow_state import (
    FinalReport, FinishedWorkflow, PruningParameters, ToolCallRequest,
    WorkflowControl, WorkflowNode, WorkflowState
)
from chronicle.domain.orchestration.core.prompts import (
    WorkflowPrompts, finished_workflow_parser, message_content, workflow_control_parser
)
from chronicle.domain.orchestration.decision import DecisionCapability
from chronicle.domain.tool.tool_executor import ToolExecutor
from chronicle.infrastructure.observability.logging import agent_logger

logger = structlog.get_logger(__name__)

EXTRACTION_FAILED_SUMMARY = "Extracting workflow data failed"
CONTROL_PARSE_FAILED_REASON = "Failed to parse control message"

NodeFn = Callable[[WorkflowState], Awaitable[Dict[str, Any]]]


def parse_workflow_control(content: str) -> WorkflowControl:
    """Parse the decision text; raises StructuredParseFailure"""

    try:
        return workflow_control_parser.parse(content)
    except OutputParserException as e:
        raise StructuredParseFailure(f"Invalid workflow control: {e}") from e


def parse_finished_workflow(content: str) -> FinishedWorkflow:
    """Parse the end-of-run report; raises StructuredParseFailure"""

    try:
        return finished_workflow_parser.parse(content)
    except OutputParserException as e:
        raise StructuredParseFailure(f"Invalid workflow report: {e}") from e


class AgentOrchestrator:
    """Decide, maybe run tools, maybe summarize, repeat until told to stop"""

    def __init__(
        self,
        decision: DecisionCapability,
        tool_executor: ToolExecutor,
        context_window: ContextWindowManager,
        prompts: WorkflowPrompts,
        pruning: Optional[PruningParameters] = None,
        max_steps: int = 25,
        step_retries: int = 1,
        thread_prefix: str = "orchestrator",
        checkpointer: Optional[Any] = None,
    ):
        if max_steps < 1:
            raise ValueError("max_steps must be at least 1")

        self.decision = decision
        self.tool_executor = tool_executor
        self.context_window = context_window
        self.prompts = prompts
        self.pruning = pruning or PruningParameters()
        self.max_steps = max_steps
        self.step_retries = step_retries
        self.thread_prefix = thread_prefix
        self.checkpointer = checkpointer
        self.workflow = self._create_workflow()

    def _create_workflow(self):
        """Create the orchestrator graph"""

        workflow = StateGraph(WorkflowState)

        workflow.add_node(WorkflowNode.INPUT.value, self._with_step_retry(WorkflowNode.INPUT, self.input_node))
        workflow.add_node(
            WorkflowNode.TOOL_EXECUTION.value,
            self._with_step_retry(WorkflowNode.TOOL_EXECUTION, self.tool_execution_node)
        )
        workflow.add_node(
            WorkflowNode.MESSAGE_SUMMARY.value,
            self._with_step_retry(WorkflowNode.MESSAGE_SUMMARY, self.message_summary_node)
        )
        workflow.add_node(
            WorkflowNode.FINISH_WORKFLOW.value,
            self._with_step_retry(WorkflowNode.FINISH_WORKFLOW, self.finish_workflow_node)
        )

        workflow.set_entry_point(WorkflowNode.INPUT.value)

        # Termination is only ever decided here
        workflow.add_conditional_edges(
            WorkflowNode.INPUT.value,
            self.route_after_input,
            {
                WorkflowNode.FINISH_WORKFLOW.value: WorkflowNode.FINISH_WORKFLOW.value,
                WorkflowNode.TOOL_EXECUTION.value: WorkflowNode.TOOL_EXECUTION.value,
                WorkflowNode.MESSAGE_SUMMARY.value: WorkflowNode.MESSAGE_SUMMARY.value,
            }
        )
        workflow.add_edge(WorkflowNode.TOOL_EXECUTION.value, WorkflowNode.MESSAGE_SUMMARY.value)
        workflow.add_edge(WorkflowNode.MESSAGE_SUMMARY.value, WorkflowNode.INPUT.value)
        workflow.add_edge(WorkflowNode.FINISH_WORKFLOW.value, END)

        if self.checkpointer is not None:
            return workflow.compile(checkpointer=self.checkpointer)
        return workflow.compile()

    def _with_step_retry(self, node: WorkflowNode, fn: NodeFn) -> NodeFn:
        """Retry a whole step a bounded number of times before surfacing the error"""

        async def run_step(state: WorkflowState) -> Dict[str, Any]:
            attempt = 0
            while True:
                try:
                    return await fn(state)
                except RunawayWorkflow:
                    raise
                except Exception as e:
                    if attempt >= self.step_retries:
                        raise
                    attempt += 1
                    logger.warning(
                        "Retrying workflow step",
                        node=node.value,
                        attempt=attempt,
                        error=str(e),
                        error_type=type(e).__name__
                    )

        return run_step

    # ------------------------------------------------------------------
    # Nodes
    # ------------------------------------------------------------------

    async def input_node(self, state: WorkflowState) -> Dict[str, Any]:
        """Ask the decision capability what to do next"""

        visits = state["input_visits"] + 1
        if visits > self.max_steps:
            raise RunawayWorkflow(state["run_id"], self.max_steps)

        history = state["history"]
        logger.info("Running input node", step=visits, history_size=len(history))

        result = await self.decision.invoke(self.prompts.input_messages(history))

        tool_calls = [
            ToolCallRequest(name=call["name"], arguments=call.get("args") or {}, id=call.get("id"))
            for call in (result.tool_calls or [])
        ]

        control = None
        if not tool_calls:
            try:
                control = parse_workflow_control(message_content(result))
            except StructuredParseFailure as e:
                logger.error(
                    "Failed to parse workflow control. Applying fallback termination.",
                    error=str(e),
                    content=message_content(result)
                )
                control = WorkflowControl(should_stop=True, reason=CONTROL_PARSE_FAILED_REASON)

        return {
            "history": self.context_window.append(history, [result], state["pruning"]),
            "control_signal": control,
            "pending_tool_calls": tool_calls,
            "input_visits": visits,
            "trace": state["trace"] + [WorkflowNode.INPUT.value],
        }

    async def tool_execution_node(self, state: WorkflowState) -> Dict[str, Any]:
        """Run the requested tools in order"""

        calls = state["pending_tool_calls"]
        logger.info("Executing tools", tools=[call.name for call in calls])

        results = await self.tool_executor.execute(state["run_id"], calls)

        return {
            "history": self.context_window.append(state["history"], results, state["pruning"]),
            "pending_tool_calls": [],
            "trace": state["trace"] + [WorkflowNode.TOOL_EXECUTION.value],
        }

    async def message_summary_node(self, state: WorkflowState) -> Dict[str, Any]:
        """Compress history when it outgrows the window"""

        history = await self.context_window.compress(state["history"], state["pruning"])

        return {
            "history": history,
            "trace": state["trace"] + [WorkflowNode.MESSAGE_SUMMARY.value],
        }

    async def finish_workflow_node(self, state: WorkflowState) -> Dict[str, Any]:
        """Request the structured end-of-run report"""

        now = datetime.now(timezone.utc).isoformat()
        control = state["control_signal"]
        stop_reason = control.reason if control else None

        result = await self.decision.invoke(
            self.prompts.finish_messages(state["history"], now),
            use_tools=False
        )

        try:
            workflow_data = parse_finished_workflow(message_content(result))
        except StructuredParseFailure as e:
            logger.error("Workflow completed but no finished workflow data found", error=str(e))
            report = FinalReport(
                run_id=state["run_id"],
                summary=EXTRACTION_FAILED_SUMMARY,
                stop_reason=stop_reason,
                extraction_failed=True,
            )
        else:
            report = FinalReport(
                run_id=state["run_id"],
                summary=f"This action finished running at {now}. Action summary: {workflow_data.workflow_summary}",
                next_prompt=(
                    f"Instructions for this workflow: {workflow_data.next_workflow_prompt}"
                    if workflow_data.next_workflow_prompt else None
                ),
                seconds_until_next=workflow_data.seconds_until_next_workflow,
                stop_reason=stop_reason,
            )

        return {
            "final_report": report,
            "trace": state["trace"] + [WorkflowNode.FINISH_WORKFLOW.value],
        }

    # ------------------------------------------------------------------
    # Routing
    # ------------------------------------------------------------------

    def route_after_input(self, state: WorkflowState) -> Literal["finish_workflow", "tool_execution", "message_summary"]:
        """Route on the decision: stop, run tools, or summarize"""

        control = state.get("control_signal")
        if control is not None and control.should_stop:
            target, condition = WorkflowNode.FINISH_WORKFLOW, "stop_requested"
            logger.info("Workflow stop requested", reason=control.reason)
        elif state.get("pending_tool_calls"):
            target, condition = WorkflowNode.TOOL_EXECUTION, "tool_calls"
        else:
            target, condition = WorkflowNode.MESSAGE_SUMMARY, "continue"

        agent_logger.log_workflow_transition(
            run_id=state["run_id"],
            from_node=WorkflowNode.INPUT.value,
            to_node=target.value,
            condition=condition,
            state_summary={
                "history_size": len(state["history"]),
                "input_visits": state["input_visits"]
            }
        )
        return target.value

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def initial_state(self, run_id: str, messages: List[BaseMessage]) -> WorkflowState:
        return {
            "run_id": run_id,
            "history": list(messages),
            "control_signal": None,
            "pending_tool_calls": [],
            "pruning": self.pruning,
            "input_visits": 0,
            "trace": [],
            "final_report": None,
        }

    async def run_workflow(
        self,
        initial_messages: Optional[List[BaseMessage]] = None,
        run_id: Optional[str] = None,
        strict: bool = False,
    ) -> FinalReport:
        """Run one workflow to completion and return its report.

        Failures end the run with a report flagged ``failed``; pass
        ``strict=True`` to have them raised instead.
        """

        run_id = run_id or f"{self.thread_prefix}-{uuid.uuid4().hex}"
        state = self.initial_state(run_id, initial_messages or [])
        config = {
            "recursion_limit": self.max_steps * 3 + 5,
            "configurable": {"thread_id": run_id},
        }

        with structlog.contextvars.bound_contextvars(run_id=run_id):
            logger.info("Starting orchestrator workflow", max_steps=self.max_steps)
            last_state: Dict[str, Any] = dict(state)

            try:
                async for values in self.workflow.astream(state, config=config, stream_mode="values"):
                    last_state = values
            except GraphRecursionError as e:
                error = RunawayWorkflow(run_id, self.max_steps)
                if strict:
                    raise error from e
                return self._failed_report(run_id, last_state, error)
            except ChronicleError as e:
                if strict:
                    raise
                return self._failed_report(run_id, last_state, e)
            except Exception as e:
                if strict:
                    raise
                logger.exception("Workflow crashed")
                return self._failed_report(run_id, last_state, e)

            report = last_state.get("final_report")
            if report is None:
                return self._failed_report(
                    run_id, last_state, StructuredParseFailure("Workflow ended without a final report")
                )

            report = report.model_copy(update={"trace": list(last_state.get("trace", []))})
            logger.info("Workflow completed", summary=report.summary, stop_reason=report.stop_reason)
            return report

    def _failed_report(self, run_id: str, last_state: Dict[str, Any], error: BaseException) -> FinalReport:
        logger.error("Workflow failed", error=str(error), error_type=type(error).__name__)
        return FinalReport(
            run_id=run_id,
            summary=f"Workflow failed: {type(error).__name__}: {error}",
            failed=True,
            error=type(error).__name__,
            trace=list(last_state.get("trace", [])),
        )
