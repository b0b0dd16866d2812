"""
Obverse Backend: Telegram wallet agent and payment links on Mantle.

ARCHITECTURE:
- Telegram Bot: chat front door (commands, free text, inline buttons)
- FastAPI Backend: chat, MCP tools, public payment-link pages, balances
- SQL DB: users, wallets, payment links, transactions, flow sessions
- Mantle RPC + explorer: balances and history; Para: custodial signing

SAFETY MODEL:
- Balances, links and stats only ever come from tool results
- Transfers are validated in a fixed order before a single submission
- Telegram transfers require an explicit Confirm tap
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.routes import agent, mcp, payment_links, wallet
from app.container import get_services
from app.core.config import settings
from app.db.init_db import init_db
from app.telegram.bot import start_bot_background, stop_bot_background

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup:
    1. Initialize database tables
    2. Build the shared services
    3. Start Telegram bot polling (if token provided)

    Shutdown:
    1. Stop the Telegram bot loop
    """
    try:
        logger.info("[*] Initializing database...")
        init_db()
        services = get_services()
        logger.info("[OK] Database initialized")

        if settings.TELEGRAM_BOT_TOKEN:
            logger.info("[*] Starting Telegram bot...")
            start_bot_background(services)
        else:
            logger.warning("[WARN] Telegram bot disabled (no token)")
    except Exception as e:
        logger.error(f"[ERROR] Startup error: {e}", exc_info=True)

    yield

    try:
        if settings.TELEGRAM_BOT_TOKEN:
            stop_bot_background()
    except Exception as e:
        logger.error(f"[ERROR] Shutdown error: {e}")


app = FastAPI(
    title="Obverse API",
    description="Telegram wallet agent, MCP tools and payment links on Mantle.",
    version="0.1.0",
    lifespan=lifespan,
)

# Restrict CORS to specific origins, methods and headers (no wildcards)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "Accept", "Origin"],
    max_age=600,
    expose_headers=["Content-Type"],
)


@app.middleware("http")
async def add_security_headers(request, call_next):
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    return response


app.include_router(agent.router, prefix="/agent", tags=["agent"])
app.include_router(mcp.router, prefix="/mcp", tags=["mcp"])
app.include_router(payment_links.router, prefix="/payment-links", tags=["payment-links"])
app.include_router(wallet.router, prefix="/wallet", tags=["wallet"])


@app.get("/health")
def health():
    return {"status": "ok", "agent_mode": settings.AGENT_MODE, "network": "mantle"}
