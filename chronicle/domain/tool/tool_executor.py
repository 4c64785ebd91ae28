from typing import Any, List
import json
import time
import structlog
from langchain_core.messages import ToolMessage

from chronicle.domain.errors import ToolNotFoundError
from chronicle.domain.models.workflow_state import ToolCallRequest
from chronicle.domain.tool.tool_registry import ToolRegistry
from chronicle.domain.tool.tool_validator import ToolParameterValidator
from chronicle.infrastructure.observability.logging import agent_logger

logger = structlog.get_logger(__name__)


def _render(result: Any) -> str:
    if isinstance(result, str):
        return result
    try:
        return json.dumps(result, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return str(result)


class ToolExecutor:
    """Runs requested tool calls in order, one result message per call"""

    def __init__(self, registry: ToolRegistry):
        self.registry = registry

    async def execute(self, run_id: str, calls: List[ToolCallRequest]) -> List[ToolMessage]:
        """Invoke each call; failures become error results and execution continues"""

        results = []
        for index, call in enumerate(calls):
            call_id = call.id or f"{call.name}-{index}"
            started = time.perf_counter()

            try:
                output = await self._invoke(call)
            except Exception as e:
                duration_ms = (time.perf_counter() - started) * 1000
                agent_logger.log_tool_execution(
                    tool_name=call.name,
                    run_id=run_id,
                    input_data=call.arguments,
                    duration_ms=duration_ms,
                    success=False,
                    error=f"{type(e).__name__}: {e}"
                )
                results.append(ToolMessage(
                    content=f"Error executing {call.name}: {type(e).__name__}: {e}",
                    tool_call_id=call_id,
                    name=call.name,
                    status="error"
                ))
                continue

            duration_ms = (time.perf_counter() - started) * 1000
            agent_logger.log_tool_execution(
                tool_name=call.name,
                run_id=run_id,
                input_data=call.arguments,
                output_data=output,
                duration_ms=duration_ms
            )
            results.append(ToolMessage(content=_render(output), tool_call_id=call_id, name=call.name))

        return results

    async def _invoke(self, call: ToolCallRequest) -> Any:
        tool = self.registry.get_tool(call.name)
        if tool is None:
            raise ToolNotFoundError(f"Tool '{call.name}' is not registered")

        ToolParameterValidator.validate_tool_call(tool, call.arguments)
        return await tool.invoke(call.arguments)
