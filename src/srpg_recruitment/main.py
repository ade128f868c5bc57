"""Command line entrypoint for the recruitment engine tools."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from collections.abc import Sequence
from pathlib import Path

from srpg_recruitment import __version__
from srpg_recruitment.config import get_settings
from srpg_recruitment.domain.models import StageData
from srpg_recruitment.factory import create_orchestrator, create_roster_repository

logger = logging.getLogger(__name__)


def _validate(stage_file: Path) -> int:
    try:
        stage = StageData.from_dict(json.loads(stage_file.read_text(encoding="utf-8")))
    except (OSError, ValueError, KeyError, TypeError) as exc:
        print(f"cannot read stage {stage_file}: {exc}", file=sys.stderr)
        return 2

    engine = create_orchestrator()
    result = engine.initialize(stage)
    if not result.success:
        print(result.message, file=sys.stderr)
        return 1

    print(f"stage {stage.id}: {len(engine.recruitable_ids())} recruitable unit(s)")
    for unit_id in engine.recruitable_ids():
        conditions = engine.get_recruitment_conditions(unit_id)
        print(f"  {unit_id}: {', '.join(c.id for c in conditions)}")
    issues = result.details.get("issues", [])
    for issue in issues:
        print(f"  ! {issue}")
    return 1 if issues else 0


def _roster() -> int:
    entries = create_roster_repository().load()
    if not entries:
        print("roster is empty")
        return 0
    for entry in entries:
        chapter = f" chapter {entry.chapter_id}" if entry.chapter_id else ""
        lost = "" if entry.is_available else "  (lost)"
        print(f"{entry.character_id}  stage {entry.stage_id}{chapter}  turn {entry.recruited_at_turn}{lost}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="srpg-recruitment", description=__doc__)
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command", required=True)

    validate = sub.add_parser("validate", help="check a stage file's recruitment data")
    validate.add_argument("stage", type=Path, help="path to the stage JSON file")

    sub.add_parser("roster", help="list permanently recruited characters")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=get_settings().log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if args.command == "validate":
        return _validate(args.stage)
    return _roster()


if __name__ == "__main__":  # pragma: no cover - manual launch helper
    sys.exit(main())
