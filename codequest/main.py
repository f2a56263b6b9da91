import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware

from codequest.api.routes import challenges, game
from codequest.api.websocket.handlers import websocket_endpoint
from codequest.config import settings
from codequest.core.metrics import MetricsMiddleware, get_metrics
from codequest.services.game_loop import game_loop

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    if settings.game_loop_enabled:
        await game_loop.start()
    logger.info(f"CodeQuest started ({settings.environment})")
    yield
    await game_loop.stop()


app = FastAPI(
    title="CodeQuest Arena",
    description="A snake arena where challenge tiles open coding exercises",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.is_development else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

if settings.metrics_enabled:
    app.add_middleware(MetricsMiddleware)

# REST API routes
app.include_router(game.router, prefix="/api/game", tags=["game"])
app.include_router(challenges.router, prefix="/api/challenges", tags=["challenges"])

# WebSocket endpoint
app.add_api_websocket_route("/api/ws", websocket_endpoint)


@app.get("/health")
async def health_check() -> dict[str, str]:
    return {"status": "healthy"}


@app.get("/metrics")
async def metrics() -> Response:
    body, content_type = await get_metrics()
    return Response(content=body, media_type=content_type)


@app.get("/")
async def root() -> dict[str, Any]:
    return {
        "name": "CodeQuest Arena",
        "tagline": "Eat the food, dodge the bugs, solve the code",
        "version": "0.1.0",
        "docs": "/docs",
        "endpoints": {
            "game": "/api/game",
            "challenges": "/api/challenges",
            "websocket": "/api/ws",
        },
        "rules": {
            "food": f"+{settings.food_points} points and one segment",
            "bug": f"-{settings.bug_penalty} points and two segments",
            "challenge": "Pauses the arena until the exercise is solved or skipped",
        },
    }
