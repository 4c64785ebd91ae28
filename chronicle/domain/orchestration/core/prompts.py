from typing import List, Optional
from dataclasses import dataclass
import json
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_core.output_parsers import PydanticOutputParser

from chronicle.domain.models.workflow_state import FinishedWorkflow, WorkflowControl

workflow_control_parser = PydanticOutputParser(pydantic_object=WorkflowControl)
finished_workflow_parser = PydanticOutputParser(pydantic_object=FinishedWorkflow)

FOLLOW_FORMAT_INSTRUCTIONS = """IMPORTANT:
- Return ONLY the raw JSON data
- DO NOT include markdown formatting, code blocks, or backticks
- Do not include any additional text or explanations
- The response should start and end with curly braces"""


def message_content(message: BaseMessage) -> str:
    if isinstance(message.content, str):
        return message.content
    return json.dumps(message.content, indent=2, ensure_ascii=False, default=str)


def render_messages(messages: List[BaseMessage]) -> str:
    """Role-tagged transcript, one message per line"""

    lines = []
    for message in messages:
        line = f"{message.type}: {message_content(message)}"
        if isinstance(message, AIMessage) and message.tool_calls:
            calls = ", ".join(
                f"{call['name']}({json.dumps(call.get('args', {}), ensure_ascii=False, default=str)})"
                for call in message.tool_calls
            )
            line += f" [tool calls: {calls}]"
        lines.append(line)
    return "\n".join(lines)


@dataclass(frozen=True)
class Character:
    name: str
    description: str
    personality: str


@dataclass
class WorkflowPrompts:
    """Builds the message lists sent to the decision capability"""

    character: Character
    custom_instructions: Optional[str] = None
    self_schedule: bool = False

    def _persona(self) -> str:
        return (
            f"Your name is {self.character.name}.\n"
            f"{self.character.description}\n"
            f"Your personality: {self.character.personality}"
        )

    def input_messages(self, history: List[BaseMessage]) -> List[BaseMessage]:
        system = f"""You are a helpful agent that orchestrates tasks, acting with your own personality.
{self._persona()}

- After you have completed the task(s) AND saved the experience to permanent storage, STOP THE WORKFLOW.
- If you don't know what to do, STOP THE WORKFLOW and give a reason.
- There is NO HUMAN IN THE LOOP. If you need human intervention, STOP THE WORKFLOW and give a reason.
- If you face any difficulties, DON'T retry more than once.
- Every once in a while you receive a summarized version of your previous messages. It is up to date.
- Use the get_current_time tool when you need the date or time.
- Use save_experience for significant actions, lessons and decisions. Use search_memory to recall them.

To act, call one or more tools. Otherwise reply with the control object below.

Custom Instructions:
{self.custom_instructions or 'None'}

{FOLLOW_FORMAT_INSTRUCTIONS}
{workflow_control_parser.get_format_instructions()}"""

        human = (
            "Based on the following messages, determine what actions should be taken.\n\n"
            f"Messages:\n{render_messages(history)}"
        )
        return [SystemMessage(content=system), HumanMessage(content=human)]

    def summary_messages(self, previous_summary: str, new_messages: str) -> List[BaseMessage]:
        system = (
            "You are summarizing a conversation to keep context manageable. Keep every fact, "
            "identifier (cids, IDs, timestamps) and decision needed to continue the work. "
            "Fold the previous summary into the new one."
        )
        human = f"Previous summary:\n{previous_summary}\n\nNew messages:\n{new_messages}"
        return [SystemMessage(content=system), HumanMessage(content=human)]

    def finish_messages(self, history: List[BaseMessage], current_time: str) -> List[BaseMessage]:
        schedule = "true" if self.self_schedule else "false"
        system = f"""Summarize the following messages in detail. This is returned as a report of what was accomplished during the workflow.

self-schedule:{schedule}
If self-schedule:true
- Recommend the prompt for the next workflow in the nextWorkflowPrompt field.
- Recommend how many seconds until the next workflow should begin in the secondsUntilNextWorkflow field.
If self-schedule:false
- Leave nextWorkflowPrompt and secondsUntilNextWorkflow empty.

{self._persona()}

Custom Instructions:
{self.custom_instructions or 'None'}

{FOLLOW_FORMAT_INSTRUCTIONS}
{finished_workflow_parser.get_format_instructions()}"""

        human = f"This workflow is ending at {current_time}.\nMessages:\n{render_messages(history)}"
        return [SystemMessage(content=system), HumanMessage(content=human)]
