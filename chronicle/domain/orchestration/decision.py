from typing import Any, Dict, List, Optional, Protocol
import structlog
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage

from chronicle.infrastructure.resilience.retry import RetryExecutor

logger = structlog.get_logger(__name__)


class DecisionCapability(Protocol):
    """Black-box decision call: messages in, one AI message out"""

    async def invoke(self, messages: List[BaseMessage], *, use_tools: bool = True) -> AIMessage:
        ...


class ChatModelDecision:
    """Decision capability backed by a LangChain chat model"""

    def __init__(
        self,
        model: BaseChatModel,
        tool_specs: Optional[List[Dict[str, Any]]] = None,
        retry: Optional[RetryExecutor] = None,
    ):
        self.model = model
        self.tool_model = model.bind_tools(tool_specs) if tool_specs else model
        self.retry = retry or RetryExecutor(max_attempts=3)

    async def invoke(self, messages: List[BaseMessage], *, use_tools: bool = True) -> AIMessage:
        runnable = self.tool_model if use_tools else self.model
        result = await self.retry.run(lambda: runnable.ainvoke(messages), operation_name="Decision call")

        usage = getattr(result, "usage_metadata", None) or {}
        logger.info(
            "Decision result",
            tool_calls=len(getattr(result, "tool_calls", []) or []),
            input_tokens=usage.get("input_tokens"),
            output_tokens=usage.get("output_tokens")
        )
        return result


def create_chat_model(provider: str, model_name: str, temperature: float) -> BaseChatModel:
    """Instantiate a chat model through LangChain's provider registry"""
    from langchain.chat_models import init_chat_model

    return init_chat_model(model_name, model_provider=provider, temperature=temperature)
