from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

from fastapi import Depends, FastAPI, Request
from sqlmodel import Session

from gateway_indexer.core.config import settings
from gateway_indexer.core.errors import IndexerError, init_sentry
from gateway_indexer.core.logging_config import get_logger
from gateway_indexer.core.scheduler import create_indexer_service
from gateway_indexer.db import create_db_and_tables, engine, get_session
from gateway_indexer.services.checkpoint import get_checkpoint
from gateway_indexer.services.webhook_outbox import get_delivery_stats

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_sentry(settings.SENTRY_DSN, environment=settings.ENVIRONMENT)
    create_db_and_tables()

    service = None
    try:
        service = create_indexer_service(engine)
    except IndexerError as e:
        # Status endpoints stay available for inspecting an existing database
        logger.warning("indexer_disabled", reason=str(e))

    if service is not None:
        service.start()
    app.state.indexer_service = service
    try:
        yield
    finally:
        if service is not None:
            service.shutdown(wait=True)


app = FastAPI(title=settings.PROJECT_NAME, lifespan=lifespan)


@app.get("/health")
def health() -> dict[str, Any]:
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service": settings.PROJECT_NAME,
    }


@app.get("/api/status")
def status(request: Request, session: Session = Depends(get_session)) -> dict[str, Any]:
    service = getattr(request.app.state, "indexer_service", None)
    return {
        "checkpoint": get_checkpoint(session),
        "indexer": {
            "enabled": service is not None,
            "scheduler_running": bool(service and service.running),
            "sync_in_progress": bool(service and service.poller.is_running),
        },
        "deliveries": get_delivery_stats(session),
    }
