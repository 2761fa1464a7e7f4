from __future__ import annotations

import argparse

from conference_room_cal.exporter.export_ics import main as export_main


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Conference room calendar exporter")
    subparsers = parser.add_subparsers(dest="command", required=True)
    export = subparsers.add_parser("export", help="Fetch once and write .ics files")
    export.add_argument("--config", required=True, help="Path to conference.yaml")
    export.add_argument("--out", required=True, help="Output directory for .ics files")
    export.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    if args.command == "export":
        return export_main(
            ["--config", args.config, "--out", args.out, "--log-level", args.log_level]
        )
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
