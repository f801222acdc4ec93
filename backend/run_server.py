"""Server runner: uvicorn with host/port from the environment."""
import os
import signal
import sys

import uvicorn

from pharmastock.core.config import settings


def handle_signal(sig, frame):
    print(f"\nReceived signal {sig}, shutting down gracefully...")
    sys.exit(0)


signal.signal(signal.SIGINT, handle_signal)
signal.signal(signal.SIGTERM, handle_signal)

if __name__ == "__main__":
    host = os.getenv("HOST", "127.0.0.1")
    port = int(os.getenv("PORT", "8000"))
    print("=" * 50)
    print(f"  Starting PharmaStock Backend on {host}:{port} ({settings.ENVIRONMENT})")
    print("=" * 50)
    uvicorn.run(
        "pharmastock.main:app",
        host=host,
        port=port,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )
