#!/usr/bin/env python3
"""
Load item vectors from a JSON catalog into the configured vector backend.

Each catalog item needs an "id" (or "item_id") and a "vector". Items are
written to Pinecone as a single chunk "<item_id>_0" with item_id metadata, or
to Qdrant as one point with an item_id payload.

Requires:
  - VECTOR_BACKEND=pinecone (PINECONE_API_KEY, PINECONE_INDEX_NAME) or
    VECTOR_BACKEND=qdrant (QDRANT_URL)

Usage:
  From repo root:
    python -m server.scripts.load_item_vectors --items data/items.json

  Optional:
    --limit 500
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

_REPO_ROOT = Path(__file__).resolve().parent.parent.parent
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

from server.config import get_config
from server.services.item_provider import JsonItemProvider
from server.state import AppState


def main() -> int:
    parser = argparse.ArgumentParser(description="Load item vectors into the vector backend")
    parser.add_argument(
        "--items",
        type=Path,
        default=None,
        help="Path to items JSON (default: ITEMS_JSON_PATH)",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Max items to load (default: all)",
    )
    args = parser.parse_args()

    config = get_config()
    logging.basicConfig(level=config.log_level, format="%(levelname)s %(name)s %(message)s")

    if config.vector_backend == "memory":
        print("VECTOR_BACKEND=memory has nothing to load into; set pinecone or qdrant.", file=sys.stderr)
        return 1
    ok, errors = config.validate()
    if not ok:
        for e in errors:
            print(f"Config error: {e}", file=sys.stderr)
        return 1

    items_path = args.items or config.items_json_path
    if not items_path or not Path(items_path).is_file():
        print(f"Items JSON not found: {items_path}", file=sys.stderr)
        return 1

    vectors = JsonItemProvider(items_path).vectors()
    if args.limit is not None:
        vectors = dict(list(vectors.items())[: args.limit])
    if not vectors:
        print("No items with vectors to load.", file=sys.stderr)
        return 0
    print(f"Items to load: {len(vectors)} (backend={config.vector_backend})")

    state = AppState(config)
    written = asyncio.run(state.item_index.upsert_item_vectors(vectors))
    print(f"Done. Wrote {written} item vectors.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
