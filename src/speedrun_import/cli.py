from __future__ import annotations

import argparse
import asyncio
import json
import sys
from dataclasses import asdict

from .config import load_config
from .logging_utils import log_json, setup_logging
from .models import ImportProgress
from .normalize import LEADERBOARD_TYPES, RUN_TYPES
from .orchestrate import Importer
from .scoring import score


def _parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="speedrun-import")
    parser.add_argument("--config", default="config.yaml")
    parser.add_argument("--log-level", default="INFO")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("import", help="Import new verified runs from speedrun.com")
    run.add_argument("--limit", type=int, help="Maximum number of SRC runs to consider")

    fetch = sub.add_parser("fetch-run", help="Translate one SRC run without saving it")
    fetch.add_argument("--run-id", required=True)

    points = sub.add_parser("score", help="Points for a ranked run")
    points.add_argument("--rank", type=int)
    points.add_argument("--run-type", choices=RUN_TYPES, default="solo")
    points.add_argument("--leaderboard-type", choices=LEADERBOARD_TYPES, default="regular")
    points.add_argument("--obsolete", action="store_true")

    return parser.parse_args(argv)


def main(argv=None) -> None:
    args = _parse_args(argv)
    if args.command == "score":
        print(score(args.rank, args.run_type, args.leaderboard_type, args.obsolete))
        return

    logger = setup_logging(args.log_level)
    cfg = load_config(args.config)
    importer = Importer.from_config(cfg, logger)
    if args.command == "import" and args.limit:
        importer.limit = args.limit

    def _on_progress(progress: ImportProgress) -> None:
        done = progress.imported + progress.skipped
        if done == progress.total or done % 25 == 0:
            log_json(logger, "import_progress", **asdict(progress))

    async def _run():
        try:
            if args.command == "import":
                result = await importer.run_import(_on_progress)
                return result.to_dict()
            return await importer.preview_run(args.run_id)
        finally:
            await importer.close()

    payload = asyncio.run(_run())
    json.dump(payload, sys.stdout, indent=2, default=str)
    sys.stdout.write("\n")


if __name__ == "__main__":
    main()
