"""Entry point — builds the cognitive loop and starts the server."""

import argparse
import logging

import uvicorn
from cogcycle.config import config
from cogcycle.loop import CognitiveLoop
from cogcycle.renderer import TextRenderer
from cogcycle.server import create_app

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(name)s] %(message)s",
    datefmt="%H:%M:%S",
)

logger = logging.getLogger("cogcycle.main")


def main():
    parser = argparse.ArgumentParser(description="Run the background cognitive loop.")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    args = parser.parse_args()

    loop = CognitiveLoop.from_config(config)
    renderer = TextRenderer.from_settings(config["renderer"])
    app = create_app(loop, renderer, auto_start=config["auto_start"])

    logger.info(
        f"Waking every {config['wake_interval_seconds']}s, "
        f"up to {config['max_tasks_per_cycle']} tasks per cycle"
    )
    uvicorn.run(app, host=args.host, port=args.port, log_level="info")


if __name__ == "__main__":
    main()
