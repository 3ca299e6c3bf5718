"""Pune ZP Citizen Assistant: WhatsApp webhook + citizen inspection API entrypoint."""

from pathlib import Path

from dotenv import load_dotenv

load_dotenv(Path(__file__).resolve().parents[1] / ".env")

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI

from src.citizens.router import router as citizens_router
from src.registry import init_db
from src.whatsapp import router as whatsapp_router
from src.whatsapp.client import HourlyRateLimiter, default_hourly_limit

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    app.state.rate_limiter = HourlyRateLimiter(default_hourly_limit())
    yield


app = FastAPI(
    title="Pune ZP Citizen Assistant",
    description="WhatsApp webhook → registration state machine (name, village) → Q&A",
    lifespan=lifespan,
)
app.include_router(whatsapp_router)
app.include_router(citizens_router)


@app.get("/health")
def health():
    return {"status": "ok"}
