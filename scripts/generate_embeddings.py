#!/usr/bin/env python3
"""
Build the retrieval corpus: chunk a knowledge text file, embed every chunk
with the OpenAI embeddings API and write the corpus JSON.
Usage: python scripts/generate_embeddings.py [--input knowledge/consolidated_knowledge.txt]
"""

import argparse
import json
import os
import sys
import time
from pathlib import Path
from typing import List

import httpx

from chat_relay.services.corpus_builder import build_corpus_document, split_text_into_chunks

OPENAI_URL = os.environ.get("OPENAI_BASE_URL", "https://api.openai.com/v1").rstrip("/") + "/embeddings"
BATCH_SIZE = 50


def get_embeddings(client: httpx.Client, texts: List[str], api_key: str, model: str) -> List[List[float]]:
    """Get embeddings from OpenAI."""
    response = client.post(
        OPENAI_URL,
        headers={"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"},
        json={"model": model, "input": texts},
    )
    response.raise_for_status()
    data = sorted(response.json()["data"], key=lambda item: item["index"])
    return [item["embedding"] for item in data]


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("--input", default="knowledge/consolidated_knowledge.txt")
    parser.add_argument("--output", default=os.environ.get("CORPUS_PATH", "knowledge/embeddings.json"))
    parser.add_argument("--model", default=os.environ.get("EMBEDDING_MODEL", "text-embedding-3-large"))
    parser.add_argument("--chunk-size", type=int, default=int(os.environ.get("CHUNK_SIZE", "1000")))
    parser.add_argument("--chunk-overlap", type=int, default=int(os.environ.get("CHUNK_OVERLAP", "200")))
    return parser.parse_args()


def main():
    args = parse_args()
    api_key = os.environ.get("OPENAI_API_KEY")
    if not api_key:
        print("Missing OPENAI_API_KEY env var", file=sys.stderr)
        sys.exit(1)

    source = Path(args.input)
    if not source.exists():
        print(f"Knowledge file not found: {source}", file=sys.stderr)
        sys.exit(1)

    text = source.read_text(encoding="utf-8")
    chunks = split_text_into_chunks(text, args.chunk_size, args.chunk_overlap)
    print(f"Read {len(text)} chars, {len(chunks)} chunks (size={args.chunk_size}, overlap={args.chunk_overlap})")
    if not chunks:
        print("Nothing to embed", file=sys.stderr)
        sys.exit(1)

    vectors: List[List[float]] = []
    with httpx.Client(timeout=60.0) as client:
        for i in range(0, len(chunks), BATCH_SIZE):
            batch = chunks[i : i + BATCH_SIZE]
            vectors.extend(get_embeddings(client, batch, api_key, args.model))
            print(f"  Embedded {len(vectors)}/{len(chunks)}")
            if i + BATCH_SIZE < len(chunks):
                time.sleep(0.1)

    document = build_corpus_document(
        chunks, vectors, model=args.model, chunk_size=args.chunk_size, chunk_overlap=args.chunk_overlap
    )
    output = Path(args.output)
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(json.dumps(document, ensure_ascii=False, indent=2), encoding="utf-8")
    print(f"\nDone! Wrote {len(chunks)} chunks ({document['metadata']['embeddingDimension']} dims) to {output}")


if __name__ == "__main__":
    main()
