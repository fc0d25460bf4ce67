"""Load the bundled sample CRM data into the vector store.

Usage::

    crm-rag-load-samples                 # reads settings.sample_data_dir
    crm-rag-load-samples --data-dir ./data/raw
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from crm_rag.config import settings
from crm_rag.errors import AggregateIngestionError, IngestionError
from crm_rag.ingestion.models import DataSource, IngestionRequest, IngestionResult, RecordKind, SourceType
from crm_rag.ingestion.orchestrator import IngestionOrchestrator

logger = logging.getLogger(__name__)

SAMPLE_FILES: dict[RecordKind, str] = {
    RecordKind.CUSTOMER: "sample_customers.json",
    RecordKind.QUOTE: "sample_quotes.json",
    RecordKind.WORK_HISTORY: "sample_work_history.json",
}


def sample_requests(data_dir: str | Path) -> list[IngestionRequest]:
    """One JSON request per sample file in *data_dir*."""
    root = Path(data_dir)
    return [
        IngestionRequest(
            source=DataSource(type=SourceType.JSON, path=str(root / filename)),
            data_type=kind,
        )
        for kind, filename in SAMPLE_FILES.items()
    ]


def render_report(result: IngestionResult) -> str:
    lines = [f"Ingested {result.total} record(s): {result.summary()}", "Breakdown:"]
    for kind in RecordKind:
        lines.append(f"  - {kind.value}: {result.by_type.get(kind.value, 0)}")
    if result.failures:
        lines.append("Failures:")
        for failure in result.failures:
            ref = f" [{failure.record_id}]" if failure.record_id else ""
            lines.append(f"  - {failure.stage} {failure.source_path}{ref}: {failure.message}")
    return "\n".join(lines)


async def load_samples(orchestrator: IngestionOrchestrator, data_dir: str | Path) -> IngestionResult:
    return await orchestrator.ingest_bulk(sample_requests(data_dir))


def main(argv: list[str] | None = None, orchestrator: IngestionOrchestrator | None = None) -> int:
    parser = argparse.ArgumentParser(description="Load sample CRM data into the vector store.")
    parser.add_argument("--data-dir", default=settings.sample_data_dir, help="Directory holding sample_*.json")
    args = parser.parse_args(argv)

    logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    if orchestrator is None:
        from crm_rag.factory import build_components

        orchestrator = build_components().orchestrator

    try:
        result = asyncio.run(load_samples(orchestrator, args.data_dir))
    except AggregateIngestionError as exc:
        print(f"Loading failed: {exc}", file=sys.stderr)
        for failure in exc.failures:
            print(f"  - {failure.source_path}: {failure.message}", file=sys.stderr)
        print("Check that the data directory exists and contains the sample_*.json files.", file=sys.stderr)
        return 1
    except IngestionError as exc:
        print(f"Loading failed: {exc}", file=sys.stderr)
        return 1

    print(render_report(result))
    return 0


if __name__ == "__main__":
    sys.exit(main())
