"""Read-only HTTP surface: health, battle status and the leaderboard."""

from __future__ import annotations

import contextlib
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING

import structlog
from starlette.applications import Starlette
from starlette.responses import JSONResponse
from starlette.routing import Route

from rumble.logic.enums import StatName
from rumble.server.settings import RumbleSettings
from shared.build_info import build_info

if TYPE_CHECKING:
    from starlette.requests import Request

    from rumble.session.controller import BattleController

logger = structlog.get_logger()

_MAX_LEADERBOARD_LIMIT = 100


async def health(_request: Request) -> JSONResponse:
    return JSONResponse({"status": "ok", **build_info()})


async def status(request: Request) -> JSONResponse:
    controller: BattleController = request.app.state.controller
    battles = await controller.store.active_battles()
    return JSONResponse(
        {
            "status": "ok",
            **build_info(),
            "battles": [
                {
                    "battle_id": b.battle_id,
                    "visibility": b.visibility.value,
                    "status": b.status.value,
                    "participants": len(b.participants),
                    "active_participants": len(b.active_participants),
                    "round": b.current_round,
                }
                for b in battles
            ],
            "running_battles": len(controller.runner.running_battle_ids),
        },
    )


async def leaderboard(request: Request) -> JSONResponse:
    controller: BattleController = request.app.state.controller
    try:
        metric = StatName(request.query_params.get("metric", StatName.WINS.value))
    except ValueError:
        return JSONResponse({"error": f"metric must be one of {', '.join(s.value for s in StatName)}"}, status_code=400)
    try:
        limit = int(request.query_params.get("limit", "10"))
    except ValueError:
        return JSONResponse({"error": "limit must be an integer"}, status_code=400)
    if not 1 <= limit <= _MAX_LEADERBOARD_LIMIT:
        return JSONResponse({"error": f"limit must be between 1 and {_MAX_LEADERBOARD_LIMIT}"}, status_code=400)

    players = await controller.get_leaderboard(metric, limit)
    return JSONResponse(
        {
            "metric": metric.value,
            "players": [p.model_dump(mode="json") for p in players],
        },
    )


def create_app(controller: BattleController, settings: RumbleSettings | None = None) -> Starlette:
    if settings is None:  # pragma: no cover
        settings = RumbleSettings()

    @contextlib.asynccontextmanager
    async def lifespan(_app: Starlette) -> AsyncIterator[None]:
        await controller.recover()
        try:
            yield
        finally:
            await controller.shutdown()

    routes = [
        Route("/health", health, methods=["GET"]),
        Route("/status", status, methods=["GET"]),
        Route("/leaderboard", leaderboard, methods=["GET"]),
    ]
    app = Starlette(routes=routes, lifespan=lifespan)
    app.state.settings = settings
    app.state.controller = controller

    logger.info("rumble server ready")
    return app
