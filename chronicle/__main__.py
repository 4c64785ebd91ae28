"""
Command line entry point.

    python -m chronicle run [--prompt TEXT] [--max-runs N]
    python -m chronicle serve
    python -m chronicle verify
"""
import argparse
import asyncio
import json
import sys
import structlog

from chronicle.application.bootstrap import build_ledger, build_runtime
from chronicle.application.scheduler import WorkflowScheduler
from chronicle.domain.errors import ChronicleError
from chronicle.infrastructure.config.settings import get_settings
from chronicle.infrastructure.observability.logging import setup_logging

logger = structlog.get_logger("chronicle")

DEFAULT_PROMPT = (
    "Review what you have recorded so far, decide what is worth doing next, do it, "
    "and save any interesting experiences to permanent storage."
)


async def _run(args: argparse.Namespace) -> int:
    settings = get_settings()
    runtime = await build_runtime(settings)
    scheduler = WorkflowScheduler(
        runtime.orchestrator,
        initial_prompt=args.prompt or DEFAULT_PROMPT,
        default_interval_seconds=settings.default_interval_seconds,
    )
    try:
        reports = await scheduler.run_forever(max_runs=args.max_runs)
    finally:
        await runtime.aclose()
    return 1 if reports and reports[-1].failed else 0


async def _verify(args: argparse.Namespace) -> int:
    settings = get_settings()
    ledger = await build_ledger(settings)
    try:
        result = await ledger.verify_chain(settings.agent_id)
    finally:
        await ledger.aclose()
    print(json.dumps(result.model_dump(), indent=2))
    return 0 if result.consistent else 2


def _serve(args: argparse.Namespace) -> int:
    import uvicorn
    from chronicle.application.api.api_server import create_app

    settings = get_settings()
    app = create_app(ledger_factory=lambda: build_ledger(settings))
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog="chronicle", description="Autonomous agent with a hash-chained memory ledger")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="run the self-scheduling workflow loop")
    run.add_argument("--prompt", help="initial instructions for the first run")
    run.add_argument("--max-runs", type=int, default=None, help="stop after this many runs")

    sub.add_parser("serve", help="serve the read-only records API")
    sub.add_parser("verify", help="check the local chain against its on-chain anchor")

    args = parser.parse_args(argv)
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format, service_name=settings.agent_id)
    structlog.contextvars.bind_contextvars(agent_id=settings.agent_id)

    if args.command == "serve":
        return _serve(args)

    try:
        if args.command == "run":
            return asyncio.run(_run(args))
        return asyncio.run(_verify(args))
    except KeyboardInterrupt:
        logger.info("Received interrupt. Shutting down.")
        return 0
    except ChronicleError as e:
        logger.error("Command failed", command=args.command, error=str(e), error_type=type(e).__name__)
        return 2


if __name__ == "__main__":
    sys.exit(main())
