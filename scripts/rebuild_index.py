#!/usr/bin/env python3
"""
Index Rebuild Utility
Embeds every new or changed document into document_embeddings.
Unchanged documents are skipped by content hash; Ctrl-C stops after the current document.
"""

import argparse
import signal
import sys
import threading
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from docquery.core.config import DB_PATH, EMBED_DIM
from docquery.core.db import init_db
from docquery.vector.embeddings import HashEmbeddingEngine
from docquery.vector.store import SQLiteVectorStore


def main(argv=None):
    """Rebuild the embedding index from the documents table."""
    parser = argparse.ArgumentParser(
        description="Rebuild document embeddings",
        epilog="""
Examples:
  %(prog)s                          # Embed new and changed documents
  %(prog)s --db-path ./data/docs.db # Use another store
  %(prog)s --stats                  # Only print coverage
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    parser.add_argument("--db-path", default=DB_PATH, help="SQLite store location")
    parser.add_argument("--stats", action="store_true", help="Print embedding coverage and exit")
    args = parser.parse_args(argv)

    # Initialize database
    init_db(args.db_path)

    store = SQLiteVectorStore(HashEmbeddingEngine(dimension=EMBED_DIM), db_path=args.db_path)

    stats = store.get_statistics()
    print(f"Found {stats.total_documents} documents, {stats.vectorized_documents} with embeddings")
    if args.stats:
        return 0

    stop_event = threading.Event()

    def handle_interrupt(signum, frame):
        print("\nInterrupt received, stopping after the current document...")
        stop_event.set()

    previous_handler = signal.signal(signal.SIGINT, handle_interrupt)

    def on_progress(processed, total):
        if processed % 10 == 0 or processed == total:
            print(f"  ... processed {processed}/{total} documents")

    print("Starting vector index rebuild...")
    try:
        progress = store.vectorize_all(on_progress=on_progress, should_stop=stop_event.is_set)
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    print(f"✓ Embedded {progress.vectorized}, skipped {progress.skipped}, failed {progress.failed} "
          f"in {progress.duration_ms:.0f}ms")

    if progress.cancelled:
        print("Index rebuild cancelled; run again to continue.")
        return 130
    if progress.failed:
        print(f"WARNING: {progress.failed} documents could not be embedded")
        return 1

    print("Index rebuild complete!")
    return 0


if __name__ == "__main__":
    sys.exit(main())
