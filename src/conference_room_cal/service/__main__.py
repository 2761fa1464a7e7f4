from __future__ import annotations

import argparse
import logging
from pathlib import Path

from conference_room_cal.config.loader import load_conference_config, load_from_env
from conference_room_cal.service.app import create_app


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Serve per-room conference calendars")
    parser.add_argument(
        "--config",
        help="Path to conference.yaml (default: CONFERENCE_CONFIG_PATH or CONFERENCE_ID)",
    )
    parser.add_argument("--host", default="0.0.0.0", help="Bind address")
    parser.add_argument("--port", type=int, default=8000, help="Bind port")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(level=args.log_level, format="%(levelname)s %(message)s")

    config = load_conference_config(Path(args.config)) if args.config else load_from_env()
    app = create_app(config)
    app.run(host=args.host, port=args.port, threaded=True, use_reloader=False)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
