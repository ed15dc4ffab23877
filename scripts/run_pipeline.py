"""
Run the generic landscape pipeline from CLI.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from dataclasses import asdict
from pathlib import Path

from app.config import get_pipeline_settings
from app.domain.drug_records import CountMode
from app.domain.pipeline_run import PipelineRun, RunStatus
from app.ingestion import SourceFileError, read_source_file
from app.services.pipeline_orchestrator import PipelineOrchestrator


def _build_payload(run: PipelineRun) -> dict[str, object]:
    return {
        "run_id": run.id,
        "status": run.status,
        "message": run.message,
        "count_mode": run.count_mode,
        "include_revoked": run.include_revoked,
        "summary": asdict(run.summary),
        "results": [asdict(record) for record in run.results],
        "generic_items": [asdict(record) for record in run.generic_items],
        "generic_compact": [asdict(record) for record in run.compact_summaries],
    }


def main() -> int:
    settings = get_pipeline_settings()
    parser = argparse.ArgumentParser(description="Count original and generic registrations for a product list.")
    parser.add_argument("--input", dest="input_path", required=True, help="CSV file with sequence and product columns.")
    parser.add_argument(
        "--count-mode",
        dest="count_mode",
        choices=CountMode.ALL,
        default=settings.count_mode,
        help="Count by ingredient, or by distinct ingredient and dosage form.",
    )
    parser.add_argument(
        "--include-revoked",
        dest="include_revoked",
        action="store_true",
        default=settings.include_revoked,
        help="Count registry entries whose approval was revoked.",
    )
    parser.add_argument("--output", dest="output_path", default=None, help="Write JSON here instead of stdout.")
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, os.getenv("LOG_LEVEL", "WARNING").strip().upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        stream=sys.stderr,
    )

    try:
        source_records = read_source_file(args.input_path)
    except (OSError, SourceFileError) as exc:
        print(json.dumps({"status": RunStatus.ERROR, "message": str(exc)}, indent=2))
        return 2

    def report(current: int, total: int, message: str) -> None:
        print(f"[{current}/{total}] {message}", file=sys.stderr)

    orchestrator = PipelineOrchestrator()
    run = asyncio.run(
        orchestrator.run(
            source_records,
            count_mode=args.count_mode,
            include_revoked=args.include_revoked,
            progress=report,
        )
    )

    rendered = json.dumps(_build_payload(run), indent=2, ensure_ascii=False, default=str)
    if args.output_path:
        Path(args.output_path).write_text(rendered, encoding="utf-8")
    else:
        print(rendered)
    return 0 if run.status == RunStatus.DONE else 1


if __name__ == "__main__":
    raise SystemExit(main())
