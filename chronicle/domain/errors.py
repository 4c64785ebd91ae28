from typing import Optional


class ChronicleError(Exception):
    """Base class for all agent and ledger failures"""


class TransientNetworkError(ChronicleError):
    """A network operation failed in a way that is safe to retry"""


class RetryExhausted(ChronicleError):
    """Raised when a retried operation keeps failing past its attempt budget"""

    def __init__(self, operation_name: str, attempts: int, last_error: Optional[BaseException] = None):
        self.operation_name = operation_name
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"{operation_name} failed after {attempts} attempts: {last_error}")


class AnchorFailure(ChronicleError):
    """Content was stored but its digest never got anchored on chain"""

    def __init__(self, cid: str, previous_cid: str, cause: Optional[BaseException] = None):
        self.cid = cid
        self.previous_cid = previous_cid
        self.cause = cause
        super().__init__(f"Record {cid} stored but anchor submission failed: {cause}")


class CorruptChain(ChronicleError):
    """The backward chain contains a cycle or an unresolvable ancestor"""

    def __init__(self, message: str, cid: Optional[str] = None):
        self.cid = cid
        super().__init__(message)


class RecordNotFound(ChronicleError):
    """Storage has no content for the requested cid"""

    def __init__(self, cid: str):
        self.cid = cid
        super().__init__(f"Record not found: {cid}")


class StructuredParseFailure(ChronicleError):
    """Decision output did not match the expected structured shape"""


class RunawayWorkflow(ChronicleError):
    """The workflow exceeded its configured number of decision steps"""

    def __init__(self, run_id: str, max_steps: int):
        self.run_id = run_id
        self.max_steps = max_steps
        super().__init__(f"Run {run_id} exceeded the step ceiling of {max_steps}")


class ToolNotFoundError(ChronicleError):
    """The decision step requested a capability absent from the registry"""


class ToolValidationError(ChronicleError):
    """Tool arguments failed schema validation"""

    def __init__(self, tool_name: str, errors: list):
        self.tool_name = tool_name
        self.errors = errors
        super().__init__(f"Invalid arguments for {tool_name}: {'; '.join(errors)}")
