from contextlib import asynccontextmanager
from typing import Awaitable, Callable, Optional
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import structlog

from chronicle.application.api.route.records import router as records_router
from chronicle.domain.ledger.memory_ledger import MemoryLedger

logger = structlog.get_logger(__name__)


def create_app(
    ledger: Optional[MemoryLedger] = None,
    ledger_factory: Optional[Callable[[], Awaitable[MemoryLedger]]] = None,
) -> FastAPI:
    """Read API over the memory ledger.

    Pass a ready ``ledger`` (tests, embedding) or a ``ledger_factory`` that is
    awaited at startup.
    """

    if ledger is None and ledger_factory is None:
        raise ValueError("create_app needs a ledger or a ledger_factory")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.ledger is None:
            app.state.ledger = await ledger_factory()
        logger.info("Records API started", agent_id=app.state.ledger.agent_id)
        yield
        await app.state.ledger.aclose()
        logger.info("Records API shutdown")

    app = FastAPI(title="Chronicle Memory API", lifespan=lifespan)
    app.state.ledger = ledger

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET"],
        allow_headers=["*"],
    )
    app.include_router(records_router)

    @app.get("/health")
    async def health():
        current = app.state.ledger
        return {
            "status": "healthy",
            "agent_id": current.agent_id if current else None,
            "head_cid": current.head_cid if current else None,
        }

    return app
