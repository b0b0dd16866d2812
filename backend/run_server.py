"""Runs the Obverse API (and, through its lifespan, the Telegram bot) under uvicorn."""
import signal
import sys

import uvicorn

from app.core.config import settings


def handle_signal(sig, frame):
    print(f"\nReceived signal {sig}, stopping Obverse backend...")
    sys.exit(0)


signal.signal(signal.SIGINT, handle_signal)
signal.signal(signal.SIGTERM, handle_signal)

if __name__ == "__main__":
    print("=" * 50)
    print("  Starting Obverse Backend")
    print(f"  Network: Mantle | Agent mode: {settings.AGENT_MODE}")
    print(f"  Telegram bot: {'enabled' if settings.TELEGRAM_BOT_TOKEN else 'disabled (no token)'}")
    print("=" * 50)
    uvicorn.run(
        "app.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        log_level="debug" if settings.DEBUG else "info",
    )
