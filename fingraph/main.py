from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.engine import Engine
from strawberry.fastapi import GraphQLRouter

from fingraph.config import Settings, configure_logging, load_settings
from fingraph.db import create_db_engine, init_db
from fingraph.locks import DistributedLock, create_redis_client
from fingraph.price_history import stock_client_from_settings
from fingraph.schema import create_schema, make_context_getter
from fingraph.tasks import TaskScheduler, build_tasks

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None, engine: Engine | None = None) -> FastAPI:
    settings = settings or load_settings()
    engine = engine or create_db_engine(settings.database_url)

    app = FastAPI(title="fingraph")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_origin],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.settings = settings
    app.state.engine = engine
    app.state.scheduler = None

    graphql_app = GraphQLRouter(
        create_schema(),
        context_getter=make_context_getter(engine, settings, stock_client_from_settings(settings)),
    )
    app.include_router(graphql_app, prefix="/graphql")

    @app.on_event("startup")
    async def startup() -> None:
        init_db(engine)
        if settings.scheduler_enabled:
            lock = DistributedLock(create_redis_client(settings))
            app.state.scheduler = TaskScheduler(build_tasks(engine, settings), lock)
            app.state.scheduler.start()
        logger.info("fingraph started in %s environment", settings.environment)

    @app.on_event("shutdown")
    async def shutdown() -> None:
        if app.state.scheduler is not None:
            await app.state.scheduler.stop()

    @app.get("/health")
    def health() -> dict:
        return {"status": "ok"}

    return app


settings = load_settings()
configure_logging(settings)
app = create_app(settings)
