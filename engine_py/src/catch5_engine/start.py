#!/usr/bin/env python3
"""Startup script for the Catch 5 game server"""

import logging

import uvicorn

from .settings import get_settings

logger = logging.getLogger(__name__)


def main():
    settings = get_settings()
    logging.basicConfig(level=settings.log_level.upper())

    logger.info(f"Starting Catch 5 server on {settings.host}:{settings.port}")
    logger.info(f"Health check available at: http://{settings.host}:{settings.port}/health")
    logger.info(f"WebSocket endpoint: ws://{settings.host}:{settings.port}/ws")

    uvicorn.run(
        "catch5_engine.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.reload,
        ws_ping_interval=settings.ws_ping_interval,
        ws_ping_timeout=settings.ws_ping_timeout,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
