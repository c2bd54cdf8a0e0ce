from __future__ import annotations

import argparse
from pathlib import Path
from typing import List, Optional

import uvicorn

from ..logging_setup import configure_logging
from .app import CONFIG_PATH, create_app, load_config


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Run the statement transactions API.")
    parser.add_argument("--config", type=Path, default=CONFIG_PATH, help="Path to config.json")
    parser.add_argument("--log-level", default="INFO", help="Logging level")
    args = parser.parse_args(argv)

    configure_logging(args.log_level)
    cfg = load_config(args.config)
    host = cfg.get("server", {}).get("host", "127.0.0.1")
    port = int(cfg.get("server", {}).get("port", 8000))
    uvicorn.run(create_app(cfg), host=host, port=port, reload=False)


if __name__ == "__main__":
    main()
