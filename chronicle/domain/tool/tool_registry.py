from typing import Dict, List, Any, Awaitable, Callable, Optional
from dataclasses import dataclass, field


ToolHandler = Callable[[Dict[str, Any]], Awaitable[Any]]


@dataclass(frozen=True)
class Capability:
    """An invocable tool with a declared JSON input schema"""
    name: str
    description: str
    handler: ToolHandler
    input_schema: Dict[str, Any] = field(default_factory=lambda: {"type": "object", "properties": {}})

    async def invoke(self, arguments: Dict[str, Any]) -> Any:
        return await self.handler(arguments)

    def to_tool_spec(self) -> Dict[str, Any]:
        """Function-calling description for binding to a chat model"""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.input_schema,
            },
        }


class ToolRegistry:
    """Registry for managing available tools"""

    def __init__(self, capabilities: Optional[List[Capability]] = None):
        self.tools: Dict[str, Capability] = {}

        for capability in capabilities or []:
            self.register_tool(capability)

    def register_tool(self, capability: Capability):
        """Register a new tool"""

        if capability.name in self.tools:
            raise ValueError(f"Tool already registered: {capability.name}")

        self.tools[capability.name] = capability

    def get_tool(self, name: str) -> Optional[Capability]:
        """Get a tool by name"""

        return self.tools.get(name)

    def get_available_tools(self) -> List[Capability]:
        """Get all available tools"""

        return list(self.tools.values())

    def tool_specs(self) -> List[Dict[str, Any]]:
        return [tool.to_tool_spec() for tool in self.tools.values()]

    def __contains__(self, name: str) -> bool:
        return name in self.tools

    def __len__(self) -> int:
        return len(self.tools)
