"""Prometheus metrics for CodeQuest.

Tracks HTTP traffic, arena activity and code evaluation outcomes.
"""

import re
import time
from typing import Callable

from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
    CONTENT_TYPE_LATEST,
    REGISTRY,
)
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from codequest.config import settings


# Application info
APP_INFO = Info("codequest", "CodeQuest application information")
APP_INFO.info({
    "version": "0.1.0",
    "environment": settings.environment,
})


# HTTP Request Metrics
HTTP_REQUESTS_TOTAL = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
)

HTTP_REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

HTTP_REQUESTS_IN_PROGRESS = Gauge(
    "http_requests_in_progress",
    "HTTP requests currently being processed",
    ["method", "endpoint"],
)


# WebSocket Metrics
WEBSOCKET_CONNECTIONS = Gauge(
    "websocket_connections_active",
    "Active WebSocket snapshot subscribers",
)


# Arena Metrics
ARENA_TICKS_TOTAL = Counter(
    "arena_ticks_total",
    "Arena simulation steps taken",
    ["event"],  # "moved", "food", "challenge", "bug", "bug_spawned", "game_over"
)

GAME_OVERS_TOTAL = Counter(
    "game_overs_total",
    "Games ended",
    ["reason"],  # "wall", "self", "bug"
)

CHALLENGES_SOLVED_TOTAL = Counter(
    "challenges_solved_total",
    "Challenges solved",
    ["challenge_id"],
)


# Code Evaluator Metrics
SUBMISSIONS_TOTAL = Counter(
    "code_submissions_total",
    "Total code submissions",
    ["challenge_id", "result"],  # result: "passed", "failed", "error", "syntax"
)

EVALUATION_DURATION = Histogram(
    "code_evaluation_duration_seconds",
    "Time spent evaluating a submission",
    ["challenge_id"],
    buckets=(0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 2.0, 5.0),
)


def normalize_endpoint(path: str) -> str:
    """Normalize endpoint path to reduce metric cardinality.

    Replaces challenge slugs and numeric IDs with placeholders.
    """
    path = re.sub(r"^(/api/challenges/)[^/]+", r"\1{id}", path)
    path = re.sub(r"/\d+(/|$)", "/{id}\\1", path)
    return path


def record_arena_tick(event: str) -> None:
    """Record one arena step."""
    if settings.metrics_enabled:
        ARENA_TICKS_TOTAL.labels(event=event).inc()


def record_game_over(reason: str) -> None:
    """Record the end of a game."""
    if settings.metrics_enabled:
        GAME_OVERS_TOTAL.labels(reason=reason).inc()


def record_challenge_solved(challenge_id: str) -> None:
    """Record a solved challenge."""
    if settings.metrics_enabled:
        CHALLENGES_SOLVED_TOTAL.labels(challenge_id=challenge_id).inc()


def record_submission(challenge_id: str, result: str, duration: float) -> None:
    """Record a judged code submission."""
    if settings.metrics_enabled:
        SUBMISSIONS_TOTAL.labels(challenge_id=challenge_id, result=result).inc()
        EVALUATION_DURATION.labels(challenge_id=challenge_id).observe(duration)


class MetricsMiddleware(BaseHTTPMiddleware):
    """Middleware to automatically track HTTP metrics."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        # Skip metrics endpoint itself
        if request.url.path == "/metrics":
            return await call_next(request)

        method = request.method
        normalized = normalize_endpoint(request.url.path)

        HTTP_REQUESTS_IN_PROGRESS.labels(method=method, endpoint=normalized).inc()
        start_time = time.perf_counter()
        status = 500

        try:
            response = await call_next(request)
            status = response.status_code
        finally:
            duration = time.perf_counter() - start_time
            HTTP_REQUESTS_IN_PROGRESS.labels(method=method, endpoint=normalized).dec()
            HTTP_REQUESTS_TOTAL.labels(
                method=method,
                endpoint=normalized,
                status=status,
            ).inc()
            HTTP_REQUEST_DURATION.labels(
                method=method,
                endpoint=normalized,
            ).observe(duration)

        return response


async def get_metrics() -> tuple[bytes, str]:
    """Generate Prometheus metrics output."""
    return generate_latest(REGISTRY), CONTENT_TYPE_LATEST
