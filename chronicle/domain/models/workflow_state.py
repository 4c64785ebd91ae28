from typing import Dict, Any, List, Optional, TypedDict
from pydantic import BaseModel, ConfigDict, Field, field_validator
from enum import Enum
from langchain_core.messages import BaseMessage


class WorkflowNode(str, Enum):
    """States of the orchestrator workflow"""
    INPUT = "input"
    TOOL_EXECUTION = "tool_execution"
    MESSAGE_SUMMARY = "message_summary"
    FINISH_WORKFLOW = "finish_workflow"


class PruningParameters(BaseModel):
    """History bounds, fixed for the lifetime of a run"""
    model_config = ConfigDict(frozen=True)

    max_history_before_summary: int = Field(default=30, ge=1)
    max_retained_queue_size: int = Field(default=50, ge=2)


class WorkflowControl(BaseModel):
    """Control signal emitted by the decision step"""
    model_config = ConfigDict(populate_by_name=True)

    should_stop: bool = Field(alias="shouldStop", description="Whether the workflow should stop.")
    reason: str = Field(default="", description="The reason for stopping the workflow.")


class ToolCallRequest(BaseModel):
    """A capability invocation requested by the decision step"""
    name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)
    id: Optional[str] = None


class FinishedWorkflow(BaseModel):
    """Structured report requested from the decision capability at the end of a run"""
    model_config = ConfigDict(populate_by_name=True)

    workflow_summary: str = Field(alias="workflowSummary", description="A detailed summary of the workflow.")
    next_workflow_prompt: Optional[str] = Field(
        None,
        alias="nextWorkflowPrompt",
        description="If self-scheduling is enabled, the input prompt for the next workflow."
    )
    seconds_until_next_workflow: Optional[float] = Field(
        None,
        alias="secondsUntilNextWorkflow",
        description="If self-scheduling is enabled, seconds until the workflow should begin again."
    )

    @field_validator("seconds_until_next_workflow")
    @classmethod
    def _non_negative(cls, value: Optional[float]) -> Optional[float]:
        if value is not None and value < 0:
            raise ValueError("secondsUntilNextWorkflow must not be negative")
        return value


class FinalReport(BaseModel):
    """What a workflow run hands back to its caller"""
    run_id: str
    summary: str
    next_prompt: Optional[str] = None
    seconds_until_next: Optional[float] = None
    stop_reason: Optional[str] = None
    extraction_failed: bool = False
    failed: bool = False
    error: Optional[str] = None
    trace: List[str] = Field(default_factory=list)


class WorkflowState(TypedDict):
    """State for the orchestrator graph, owned by exactly one run"""
    run_id: str
    history: List[BaseMessage]
    control_signal: Optional[WorkflowControl]
    pending_tool_calls: List[ToolCallRequest]
    pruning: PruningParameters
    input_visits: int
    trace: List[str]
    final_report: Optional[FinalReport]
