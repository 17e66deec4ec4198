"""Main application entry point."""

import logging

import uvicorn
from dotenv import load_dotenv

# Load environment variables before settings are read
load_dotenv()

from marketplace.api.app import app  # noqa: E402
from marketplace.services.logging import setup_server_logging  # noqa: E402

logger = logging.getLogger(__name__)


def main():
    """Main entry point."""
    import argparse

    parser = argparse.ArgumentParser(description="Marketplace billing API")
    parser.add_argument("--host", default="0.0.0.0", help="Host to bind to")
    parser.add_argument("--port", type=int, default=8000, help="Port to bind to")
    args = parser.parse_args()

    setup_server_logging()
    logger.info(f"Starting billing API on {args.host}:{args.port}")
    uvicorn.run(app, host=args.host, port=args.port, log_config=None)


if __name__ == "__main__":
    main()
