#!/usr/bin/env python3
"""
Topic guard API server.

Usage:
    python main.py            # serve on HOST:PORT (default 0.0.0.0:1993)
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI

from clients.embeddings.model_loader import EmbeddingModelLoader, get_model_loader
from clients.llm_provider import LLMProvider
from cns.api import health, websocket_chat
from config.config import AppConfig, get_config
from utils.logging_setup import configure_logging

logger = logging.getLogger(__name__)


def create_app(
    config: Optional[AppConfig] = None,
    llm_provider: Optional[LLMProvider] = None,
    model_loader: Optional[EmbeddingModelLoader] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Dependencies default to the process-wide configuration, embedding loader
    and a new Anthropic-backed LLMProvider.
    """
    config = config or get_config()
    model_loader = model_loader or get_model_loader(config.embeddings)
    llm_provider = llm_provider or LLMProvider(config.generation)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Starting topic guard for '{config.topic.topic}'")
        model_loader.preload()
        yield
        await llm_provider.close()
        logger.info("Topic guard shut down")

    app = FastAPI(title="Topic Guard", lifespan=lifespan)
    app.state.config = config
    app.state.model_loader = model_loader
    app.state.llm_provider = llm_provider

    app.include_router(health.router)
    app.include_router(websocket_chat.router)
    return app


def main():
    configure_logging()
    config = get_config()
    uvicorn.run(create_app(config), host=config.host, port=config.port)


if __name__ == "__main__":
    main()
