import argparse
import asyncio
import os
import sys
from pathlib import Path

# Add the project root to the Python path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from app.core.db import SessionLocal, init_models
from app.modules.knowledge.service import KnowledgeService

TEXT_SUFFIXES = {".txt", ".md"}

async def ingest_file(path: Path) -> bool:
    """
    Stores one document as a knowledge-base resource with its chunk embeddings.
    """
    content = path.read_text(encoding="utf-8")
    async with SessionLocal() as db:
        result = await KnowledgeService(db).create_resource(content)
    if result.ok:
        print(f"  - {path.name}: resource {result.resource_id}, {result.chunks} chunk(s)")
    else:
        print(f"  - {path.name}: FAILED ({result.error})")
    return result.ok

async def main(folder: str):
    print("Starting knowledge-base ingestion...")
    await init_models()

    files = sorted(p for p in Path(folder).iterdir() if p.suffix.lower() in TEXT_SUFFIXES)
    if not files:
        print(f"No .txt or .md files found in {folder}")
        return

    ok = 0
    for path in files:
        if await ingest_file(path):
            ok += 1
    print(f"Ingestion complete: {ok}/{len(files)} document(s) stored.")

if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Load text documents into the knowledge base")
    parser.add_argument("folder", help="directory with .txt/.md documents")
    args = parser.parse_args()
    asyncio.run(main(args.folder))
