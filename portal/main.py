from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from portal.authz import DecisionEngine, load_policy_set
from portal.db.init_db import init_db
from portal.db.session import create_db_engine, create_session_factory
from portal.logging_config import configure_app_logging
from portal.routers import decisions, employees, health, me
from portal.settings import Settings, get_settings

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        resolved = settings or get_settings()
        configure_app_logging(resolved.log_level)
        logger.info("App startup beginning")

        # A malformed policy raises here and the app never starts serving.
        policy_path = resolved.resolved_policy_path()
        policy_set = load_policy_set(policy_path)
        logger.info("Loaded policy set: %s", policy_path)

        db_engine = create_db_engine(resolved.resolved_db_url())
        session_factory = create_session_factory(db_engine)
        init_db(db_engine, session_factory, seed=resolved.seed_demo_data)
        logger.info("Database initialized (tables ensured + seed if needed)")

        app.state.settings = resolved
        app.state.session_factory = session_factory
        app.state.decision_engine = DecisionEngine(policy_set)

        yield

        # Shutdown
        db_engine.dispose()

    app = FastAPI(title="Company Portal", lifespan=lifespan)

    app.include_router(health.router)
    app.include_router(me.router)
    app.include_router(decisions.router)
    app.include_router(employees.router)

    return app


app = create_app()
