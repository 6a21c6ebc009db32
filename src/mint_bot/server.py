"""FastAPI health and status endpoints for mint-bot."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import uvicorn
from fastapi import FastAPI, Query

from mint_bot.config import BotConfig
from mint_bot.engine.minter import Minter

logger = logging.getLogger("mint_bot.server")


def create_app(config: BotConfig, minter: Minter | None = None) -> FastAPI:
    """Build the HTTP app.

    If *minter* is ``None`` one is opened from *config* at startup and
    closed at shutdown.
    """
    state: dict[str, Minter | None] = {"minter": minter}

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = state["minter"] is None
        if owned:
            state["minter"] = await Minter.open(config)
            logger.info(f"Server started for '{config.name}'")
        try:
            yield
        finally:
            if owned and state["minter"] is not None:
                state["minter"].close()

    app = FastAPI(title=f"{config.name} status", lifespan=lifespan)

    # ------------------------------------------------------------------
    # Routes
    # ------------------------------------------------------------------

    @app.get("/")
    async def index():
        return {"message": f"{config.name} 🚀 Running"}

    @app.get("/health")
    async def health():
        return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}

    @app.get("/api/status")
    async def api_status():
        current = state["minter"]
        if not current:
            return {}
        return {**current.status(), "connected": await current.connected()}

    @app.get("/api/wallets")
    async def api_wallets():
        current = state["minter"]
        return sorted(current.keyring.list_addresses()) if current else []

    @app.get("/api/history")
    async def api_history(limit: int = Query(10, ge=1, le=100)):
        current = state["minter"]
        if not current:
            return []
        return [entry.to_record() for entry in current.history(limit)]

    return app


# ------------------------------------------------------------------
# Runner
# ------------------------------------------------------------------


def run_server(config: BotConfig) -> None:
    app = create_app(config)
    uvicorn.run(app, host=config.server.host, port=config.server.port, log_level="info")
