import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.concurrency import run_in_threadpool

from . import db
from .config import Settings, get_settings
from .lifecycle import OrderStatusSweeper, Thresholds
from .metrics import MetricsMiddleware, metrics_endpoint
from .routes import ROUTERS

SERVICE_NAME = "food-service"


# ----- Logging -----
class CorrelationIdFilter(logging.Filter):
    """Give records logged without ``extra={"correlation_id": ...}`` a placeholder."""

    def filter(self, record):
        if not hasattr(record, "correlation_id"):
            record.correlation_id = "-"
        return True


def configure_logging(level=logging.INFO):
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] [food-service] [cid=%(correlation_id)s] %(message)s",
    )
    for handler in logging.getLogger().handlers:
        if not any(isinstance(f, CorrelationIdFilter) for f in handler.filters):
            handler.addFilter(CorrelationIdFilter())


configure_logging()
logger = logging.getLogger(SERVICE_NAME)


# ----- Init -----
def create_app(settings: Optional[Settings] = None, engine=None) -> FastAPI:
    settings = settings or get_settings()
    engine = engine if engine is not None else db.make_engine(settings.database_url)
    session_factory = db.make_session_factory(engine)
    sweeper = OrderStatusSweeper(
        session_factory,
        Thresholds(settings.preparing_minutes, settings.delivery_minutes),
        interval_seconds=settings.sweep_interval_seconds,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        db.init_db(engine)
        # catch up on orders that aged past a threshold while the server was down
        await run_in_threadpool(sweeper.run_once)
        if settings.sweep_enabled:
            sweeper.start()
        logger.info("food-service started")
        try:
            yield
        finally:
            if sweeper.running:
                sweeper.stop()
            logger.info("food-service stopped")

    app = FastAPI(title=SERVICE_NAME, version="v1", lifespan=lifespan)
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.sweeper = sweeper

    app.add_middleware(MetricsMiddleware, service_name=SERVICE_NAME)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    for router in ROUTERS:
        app.include_router(router)

    # ----- Infra Endpoints -----
    @app.get("/")
    def root():
        return {"message": "Food Service API is running"}

    @app.get("/health")
    def health():
        return {"status": "ok", "service": SERVICE_NAME, "sweeper": sweeper.running}

    @app.get("/metrics")
    def metrics():
        return metrics_endpoint()

    return app


app = create_app()


if __name__ == "__main__":
    import os

    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", 8000)))
