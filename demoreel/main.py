"""Main entry point for the demoreel backend."""

import logging

import uvicorn
from dotenv import load_dotenv

from .api.app import create_app
from .config import load_config


def main(host: str = "0.0.0.0", port: int = 8000):
    """Run the demoreel backend server."""
    _ = load_dotenv()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    config = load_config()
    uvicorn.run(
        create_app(config),
        host=host,
        port=port,
        log_level="info",
    )


if __name__ == "__main__":
    main()
