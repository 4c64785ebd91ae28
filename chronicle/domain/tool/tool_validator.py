# Parameter validation against each capability's declared schema
from typing import Any, Dict, List
from jsonschema.validators import validator_for

from chronicle.domain.errors import ToolValidationError
from chronicle.domain.tool.tool_registry import Capability


class ToolParameterValidator:
    @staticmethod
    def collect_errors(tool: Capability, parameters: Dict[str, Any]) -> List[str]:
        validator_cls = validator_for(tool.input_schema)
        validator = validator_cls(tool.input_schema)
        return [
            f"{'/'.join(str(p) for p in error.absolute_path) or '<root>'}: {error.message}"
            for error in sorted(validator.iter_errors(parameters), key=lambda e: str(list(e.absolute_path)))
        ]

    @staticmethod
    def validate_tool_call(tool: Capability, parameters: Dict[str, Any]) -> None:
        errors = ToolParameterValidator.collect_errors(tool, parameters)
        if errors:
            raise ToolValidationError(tool.name, errors)
