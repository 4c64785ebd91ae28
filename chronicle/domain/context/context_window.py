from typing import List
import structlog
from langchain_core.messages import AIMessage, BaseMessage

from chronicle.domain.models.workflow_state import PruningParameters
from chronicle.domain.orchestration.core.prompts import WorkflowPrompts, message_content, render_messages
from chronicle.domain.orchestration.decision import DecisionCapability

logger = structlog.get_logger(__name__)

SUMMARY_PREFIX = "Summary of conversation earlier: "


class ContextWindowManager:
    """Bounds conversation history by collapsing it into a running summary"""

    def __init__(self, decision: DecisionCapability, prompts: WorkflowPrompts):
        self.decision = decision
        self.prompts = prompts

    @staticmethod
    def needs_summary(history: List[BaseMessage], pruning: PruningParameters) -> bool:
        return len(history) > pruning.max_history_before_summary

    async def compress(self, history: List[BaseMessage], pruning: PruningParameters) -> List[BaseMessage]:
        """Replace everything after the first message with one summary message"""

        logger.info("Summary check", history_size=len(history), threshold=pruning.max_history_before_summary)

        if not self.needs_summary(history, pruning):
            logger.info("Not summarizing, not enough messages")
            return history

        to_summarize = history[1:]
        previous_summary = message_content(history[1]) if len(history) > 1 else "No previous summary"

        result = await self.decision.invoke(
            self.prompts.summary_messages(previous_summary, render_messages(to_summarize)),
            use_tools=False
        )
        summary = AIMessage(content=f"{SUMMARY_PREFIX}{message_content(result)}")

        logger.info("History summarized", collapsed=len(to_summarize))
        return [history[0], summary]

    @staticmethod
    def append(
        history: List[BaseMessage],
        new_messages: List[BaseMessage],
        pruning: PruningParameters
    ) -> List[BaseMessage]:
        """Append messages, dropping the oldest non-anchor ones past the queue cap"""

        combined = list(history) + list(new_messages)
        cap = pruning.max_retained_queue_size
        if len(combined) <= cap:
            return combined

        dropped = len(combined) - cap
        logger.warning("History queue cap reached", dropped=dropped, cap=cap)
        return [combined[0]] + combined[-(cap - 1):]
