"""Entry point for running the casework service."""

import uvicorn

from casework.config import load_config
from casework.factory import create_app

config = load_config()
app = create_app(config)


def run() -> None:
    """Run the service with uvicorn using the loaded configuration."""
    uvicorn.run("casework.main:app", **config.get_uvicorn_config())


if __name__ == "__main__":
    run()
