from __future__ import annotations

import argparse
import logging
import re
from pathlib import Path

from conference_room_cal.common.http_fetch import ScheduleFetchError, ScheduleProvider
from conference_room_cal.config.loader import load_conference_config
from conference_room_cal.service.refresh import (
    Provider,
    build_render_context,
    group_by_room,
    render_documents,
)

logger = logging.getLogger(__name__)

_UNSAFE_FILENAME = re.compile(r"[^\w.-]+")


def room_filename(room: str, taken: set[str] | None = None) -> str:
    """File name for a room's calendar.

    Names already in ``taken`` (compared case-insensitively) get a numeric
    suffix, and the chosen name is added to ``taken``.
    """
    stem = _UNSAFE_FILENAME.sub("_", room).strip("._") or "room"
    name = f"{stem}.ics"
    if taken is None:
        return name
    counter = 2
    while name.lower() in taken:
        name = f"{stem}-{counter}.ics"
        counter += 1
    if counter > 2:
        logger.warning("Room %r clashes with an earlier file name; writing %s", room, name)
    taken.add(name.lower())
    return name


def export_ics(
    config_path: Path,
    out_dir: Path,
    *,
    provider: Provider | None = None,
) -> dict[str, Path]:
    """Fetch the schedule once and write one calendar file per room."""
    config = load_conference_config(config_path)
    if provider is None:
        provider = ScheduleProvider(
            str(config.source.url), timeout=config.source.fetch_timeout_seconds
        )

    events = list(provider())
    all_key = config.ics.all_key
    rooms = group_by_room(events, all_key)
    documents = render_documents(events, rooms, build_render_context(config), all_key)

    out_dir.mkdir(parents=True, exist_ok=True)
    written: dict[str, Path] = {}
    taken: set[str] = set()
    for room, document in documents.items():
        path = out_dir / room_filename(room, taken)
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        tmp_path.write_bytes(document)
        tmp_path.replace(path)
        written[room] = path
        logger.debug("Wrote %s (%d bytes)", path, len(document))

    logger.info("Exported %d calendars to %s", len(written), out_dir)
    return written


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Export per-room calendars once")
    parser.add_argument("--config", required=True, help="Path to conference.yaml")
    parser.add_argument("--out", required=True, help="Output directory for .ics files")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(level=args.log_level, format="%(levelname)s %(message)s")

    try:
        export_ics(Path(args.config), Path(args.out))
    except ScheduleFetchError as exc:
        logger.error("Export failed: %s", exc)
        return 1
    return 0
