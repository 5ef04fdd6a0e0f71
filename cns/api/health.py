"""
Health API endpoint.

Reports process status and the state of the embedding backend, which tells
operators whether topic validation is semantic or running on the lexical
fallback.
"""
import logging
import time

from fastapi import APIRouter, Request

from clients.embeddings.model_loader import ModelState
from utils.timezone_utils import format_utc_iso, utc_now

logger = logging.getLogger(__name__)

router = APIRouter()

_started_at = time.time()


@router.get("/health")
def health_endpoint(request: Request):
    """System health check endpoint (no authentication required)."""
    state = request.app.state
    model_state = state.model_loader.state

    validation_mode = {
        ModelState.LOADED: "semantic",
        ModelState.FAILED: "fallback",
    }.get(model_state, "pending")

    return {
        "status": "healthy",
        "timestamp": format_utc_iso(utc_now()),
        "uptime_seconds": int(time.time() - _started_at),
        "topic": state.config.topic.topic,
        "embedding_model": model_state.value,
        "validation_mode": validation_mode,
    }
