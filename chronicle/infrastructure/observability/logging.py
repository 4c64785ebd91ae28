import structlog
import logging
import sys
from typing import Dict, Any, List, Optional
import os

_RENDERERS = {
    "json": structlog.processors.JSONRenderer,
    "console": structlog.dev.ConsoleRenderer,
}


def _processors(log_format: str) -> List[Any]:
    renderer = _RENDERERS.get(log_format, structlog.processors.JSONRenderer)
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        add_service_context,
        renderer(),
    ]


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "json",
    service_name: str = "chronicle-agent"
) -> None:
    """Route structlog through stdlib logging on stdout.

    ``run_id`` and ``agent_id`` travel in ``structlog.contextvars``; the
    orchestrator binds the first per run and the CLI binds the second once.
    """

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO)
    )

    structlog.configure(
        processors=_processors(log_format),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.bind_contextvars(
        service=service_name,
        environment=os.getenv("CHRONICLE_ENVIRONMENT", "development"),
    )


def add_service_context(logger: logging.Logger, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Keep run and agent identifiers first and drop unset fields"""

    ordered: Dict[str, Any] = {}
    for key in ("run_id", "agent_id"):
        if event_dict.get(key) is not None:
            ordered[key] = event_dict.pop(key)

    ordered.update((key, value) for key, value in event_dict.items() if value is not None)
    return ordered


class AgentLogger:
    """Domain events shared by the orchestrator, tools and ledger"""

    def __init__(self, name: str):
        self.logger = structlog.get_logger(name)

    def log_tool_execution(
        self,
        tool_name: str,
        run_id: str,
        input_data: Dict[str, Any],
        output_data: Optional[Any] = None,
        duration_ms: Optional[float] = None,
        success: bool = True,
        error: Optional[str] = None
    ):
        emit = self.logger.info if success else self.logger.warning
        emit(
            "tool_execution",
            run_id=run_id,
            tool=tool_name,
            arguments=input_data,
            result=output_data,
            duration_ms=round(duration_ms, 2) if duration_ms is not None else None,
            success=success,
            error=error
        )

    def log_workflow_transition(
        self,
        run_id: str,
        from_node: str,
        to_node: str,
        condition: Optional[str] = None,
        state_summary: Optional[Dict[str, Any]] = None
    ):
        self.logger.info(
            "workflow_transition",
            run_id=run_id,
            transition=f"{from_node} -> {to_node}",
            condition=condition,
            **(state_summary or {})
        )

    def log_ledger_event(
        self,
        action: str,
        cid: Optional[str] = None,
        previous_cid: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        """Appends, anchor failures and verification results"""

        emit = self.logger.warning if action == "anchor_failed" else self.logger.info
        emit(
            "ledger_event",
            action=action,
            cid=cid,
            previous_cid=previous_cid or None,
            **(details or {})
        )


agent_logger = AgentLogger("chronicle")
