#!/usr/bin/env python3
"""
Corpus-wide quality and contamination sweep for the task bank
"""

import argparse
import asyncio
import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import List

from tqdm import tqdm

from benchgate import Gatekeeper, GatekeeperConfig, InMemoryTaskStore, Task
from benchgate.contamination import ModelCutoffRegistry, load_dataset_catalog
from benchgate.database import DatabaseConnection, SqlAssessmentHistory, SqlTaskStore
from benchgate.similarity import OpenAIEmbeddingProvider

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def load_tasks(path: Path) -> List[Task]:
    """Tasks from a JSON list or a {"tasks": [...]} document"""
    with open(path) as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get("tasks", [])
    return [Task.from_dict(item) for item in data]


async def main():
    """Main execution"""
    parser = argparse.ArgumentParser(description="Re-screen the task bank for quality and contamination")
    parser.add_argument("--tasks", help="JSON file of tasks (in-memory store)")
    parser.add_argument("--database-url", help="SQLAlchemy URL of the task store (default: DATABASE_URL)")
    parser.add_argument("--datasets", help="JSON dataset catalog for training-data overlap")
    parser.add_argument("--models", nargs="*", default=[], help="Target model ids for temporal risk")
    parser.add_argument("--status", nargs="*", help="Only sweep tasks in these statuses")
    parser.add_argument("--workers", type=int, help="Max concurrent evaluations")
    parser.add_argument("--no-embeddings", action="store_true", help="Lexical and structural similarity only")
    parser.add_argument("--output", default="contamination_sweep.json", help="Report file")

    args = parser.parse_args()
    config = GatekeeperConfig.from_env()

    db = None
    history = None
    if args.tasks:
        store = InMemoryTaskStore(load_tasks(Path(args.tasks)))
        logger.info(f"Loaded {len(store)} tasks from {args.tasks}")
    else:
        database_url = args.database_url or config.database_url
        if not database_url:
            print("Error: pass --tasks or --database-url (or set DATABASE_URL)")
            sys.exit(1)
        db = DatabaseConnection(database_url)
        db.check_connection()
        db.create_tables()
        store = SqlTaskStore(db)
        history = SqlAssessmentHistory(db)

    datasets = load_dataset_catalog(Path(args.datasets)) if args.datasets else []

    provider = None
    if not args.no_embeddings:
        if config.embedding.api_key:
            provider = OpenAIEmbeddingProvider(config.embedding)
        else:
            logger.warning("OPENAI_API_KEY not set; running without embeddings")

    gatekeeper = Gatekeeper(
        store,
        config=config,
        embedding_provider=provider,
        history=history,
        cutoffs=ModelCutoffRegistry(config.contamination.model_training_cutoffs),
        known_datasets=datasets,
        target_models=args.models,
    )
    await gatekeeper.initialize()

    filters = {"status": args.status} if args.status else None
    task_ids = [t.id for t in store.list(filters)]
    print(f"\nSweeping {len(task_ids)} tasks with {args.workers or config.sweep_concurrency} workers...")

    try:
        with tqdm(total=len(task_ids), desc="Evaluating tasks") as pbar:
            report = await gatekeeper.sweep(
                task_ids,
                max_concurrent=args.workers,
                on_result=lambda task_id, result: pbar.update(1),
            )
    finally:
        await gatekeeper.close()
        if db is not None:
            db.close()

    summary = report.to_dict()

    # Print summary
    print("\n" + "=" * 80)
    print("CONTAMINATION SWEEP RESULTS")
    print("=" * 80)
    print(f"Total: {summary['total']}")
    print(f"Evaluated: {summary['evaluated']}")
    print(f"Failed: {summary['failed']}")
    for status, count in sorted(summary["status_counts"].items()):
        print(f"  {status}: {count}")

    summary["generated_at"] = datetime.now().isoformat()
    summary["config"] = config.to_dict()
    with open(args.output, 'w') as f:
        json.dump(summary, f, indent=2, default=str)

    print(f"\nReport saved to: {args.output}")


if __name__ == "__main__":
    asyncio.run(main())
