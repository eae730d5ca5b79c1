"""SQUADRON - squad coordination service.

Main FastAPI application.  ``create_app(engine)`` wires an existing
SquadEngine into ``app.state``; the module-level ``app`` builds its engine
at startup from ``SQUAD_SCENARIO_PATH`` when one is configured.
"""

from __future__ import annotations

import random
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from app.config import settings
from app.routers import squads_router
from squadron import __version__
from squadron.squads.engine import SquadEngine


def _create_squad_engine() -> SquadEngine | None:
    """Build a sandbox-backed engine from the configured scenario."""
    if not settings.scenario_path:
        logger.warning("No SQUAD_SCENARIO_PATH configured, squad API has no engine")
        return None

    from squadron.world.sandbox import GreedyResolver
    from squadron.world.scenario import build_world, load_squad_scenario

    scenario = load_squad_scenario(settings.scenario_path)
    world = build_world(scenario)
    engine = SquadEngine(world, world, GreedyResolver(world), rng=random.Random(scenario.seed))
    for unit_id, room in scenario.assignments().items():
        engine.assign_unit(unit_id, room)
    logger.info(f"Loaded scenario '{scenario.name}' ({len(scenario.units)} units)")
    return engine


def create_app(engine: SquadEngine | None = None, run_engine: bool = True) -> FastAPI:
    """Application factory.

    Args:
        engine: engine to serve; built from settings at startup when None
        run_engine: tick the engine on a background thread while serving
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("=" * 60)
        logger.info(f"  {settings.app_name} v{__version__} - INITIALIZING")
        logger.info("=" * 60)

        if app.state.squad_engine is None:
            app.state.squad_engine = _create_squad_engine()
        squad_engine = app.state.squad_engine
        if squad_engine is not None and run_engine:
            squad_engine.start()

        yield

        if squad_engine is not None and squad_engine.running:
            squad_engine.stop()
        logger.info(f"{settings.app_name} shutting down...")

    app = FastAPI(
        title=settings.app_name,
        description="Squad coordination engine",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.squad_engine = engine

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if settings.api_enabled:
        app.include_router(squads_router)

    @app.get("/health")
    async def health():
        squad_engine = app.state.squad_engine
        return {
            "status": "ok",
            "engine": squad_engine is not None,
            "tick": squad_engine.tick_count if squad_engine is not None else None,
        }

    return app


app = create_app()


def serve(host: str = "0.0.0.0", port: int = 8000) -> None:
    """Run the API under uvicorn."""
    import uvicorn

    uvicorn.run("app.main:app", host=host, port=port, log_level="debug" if settings.debug else "info")
