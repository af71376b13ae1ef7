import argparse
import logging
import os
from pathlib import Path

import uvicorn

from core.logger import setup_logging
from core.paths import DATA_DIR_ENV, get_data_dir


def _env_flag(name: str) -> bool:
    return os.getenv(name, "0").lower() in {"1", "true", "yes"}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run the Daily Forge entries service.")
    parser.add_argument("--host", default=os.getenv("DAILY_FORGE_HOST", "0.0.0.0"))
    parser.add_argument("--port", type=int, default=int(os.getenv("DAILY_FORGE_PORT", "8010")))
    parser.add_argument(
        "--reload",
        action="store_true",
        default=_env_flag("DAILY_FORGE_RELOAD"),
        help="restart on changes under web/ and core/",
    )
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=None,
        help=f"runtime data directory (default: ${DATA_DIR_ENV} or <project>/data)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="level for logs/system.log",
    )
    return parser


def main(argv=None):
    """Main entry point for the Daily Forge entries service."""
    args = build_parser().parse_args(argv)

    # the app module builds its repository from the environment at import time
    if args.data_dir is not None:
        os.environ[DATA_DIR_ENV] = str(args.data_dir.expanduser())

    setup_logging(log_level=getattr(logging, args.log_level))
    logging.getLogger("daily_forge").info("Data directory: %s", get_data_dir())

    uvicorn.run(
        "web.backend.app:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        reload_dirs=["web", "core"] if args.reload else None,
    )


if __name__ == "__main__":
    main()
