#!/usr/bin/env python3
"""
Payload Index Bootstrap Script

Creates the Qdrant payload indexes the retriever filters on:
- user_id (keyword): every query is scoped to one user
- lastVisitTime (float): time-window queries use a range filter

Safe to re-run; existing indexes are reported as such.

Usage:
    python scripts/create_payload_indexes.py [--collection NAME] [--check-embedding]
"""

import sys
import argparse


def main():
    parser = argparse.ArgumentParser(description="Create Qdrant payload indexes for browsing history")
    parser.add_argument("--collection", type=str, default=None, help="Collection name (defaults to config)")
    parser.add_argument(
        "--check-embedding",
        action="store_true",
        help="Also load the embedding model and verify its dimension",
    )
    args = parser.parse_args()

    from dotenv import load_dotenv

    from brainsquared.common.config import load_config
    from brainsquared.common.embedding_service import get_embedding_service
    from brainsquared.common.errors import RecallError
    from brainsquared.common.vector_client import VectorClient

    load_dotenv()
    config = load_config()
    collection = args.collection or config.qdrant.collection

    if args.check_embedding:
        print(f"[Indexes] Loading embedding model {config.embedding.model}...")
        service = get_embedding_service(
            model=config.embedding.model,
            dimension=config.embedding.dimension,
        )
        try:
            vector = service.embed_single("test")
        except RecallError as e:
            print(f"[Indexes] ERROR: {e}")
            sys.exit(1)
        print(f"[Indexes] Embedding dimension: {len(vector)}")

    print(f"[Indexes] Connecting to Qdrant at {config.qdrant.url} (collection '{collection}')...")
    client = VectorClient(
        url=config.qdrant.url,
        api_key=config.qdrant.api_key or None,
        collection=collection,
    )

    try:
        status = client.ensure_payload_indexes()
    except RecallError as e:
        print(f"[Indexes] ERROR: {e}")
        sys.exit(1)

    for field_name, state in status.items():
        print(f"[Indexes] {field_name}: {state}")
    print("[Indexes] Done")


if __name__ == "__main__":
    main()
