"""Entry point for running the thread reactor service."""

import logging

import uvicorn

from src.config.loader import get_bool_env, get_int_env, get_str_env

logging.basicConfig(
    level=logging.DEBUG if get_bool_env("DEBUG", False) else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)


def main():
    host = get_str_env("APP_HOST", "0.0.0.0")
    port = get_int_env("APP_PORT", 8000)
    reload = get_bool_env("DEBUG", False)

    logger.info(f"Starting thread reactor on {host}:{port}")

    uvicorn.run("src.server.app:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    main()
