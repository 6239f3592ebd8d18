#!/usr/bin/env python3
"""
Cooperative Society Service Entry Point

Starts the FastAPI server with uvicorn using settings from COOP_* environment
variables (or a .env file).
"""

import sys

import uvicorn

from cooperative.config import get_config
from cooperative.logging_config import setup_logging


def run_server(host: str, port: int, workers: int = 1, debug: bool = False):
    """Run the FastAPI server"""
    uvicorn.run(
        "cooperative.api:create_app",
        factory=True,
        host=host,
        port=port,
        reload=debug,
        workers=None if debug else workers,
        log_level="info"
    )


if __name__ == "__main__":
    config = get_config()
    logger = setup_logging(config.log_level, config.log_format, log_file=config.log_file)

    print("🤝 Starting Cooperative Society Service...")
    print(f"💰 Amounts in {config.currency}, {config.loan_interest_rate}% flat loan interest")
    print(f"🌐 API available at: http://localhost:{config.api_port}")
    print(f"📚 Documentation at: http://localhost:{config.api_port}/docs")
    print()

    try:
        run_server(host=config.api_host, port=config.api_port, workers=config.api_workers)
    except KeyboardInterrupt:
        print("\n👋 Shutting down Cooperative Society Service...")
    except Exception as e:
        logger.exception("Server failed to start")
        print(f"❌ Error starting server: {e}")
        sys.exit(1)
