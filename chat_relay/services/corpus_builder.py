"""Offline corpus building: chunk a knowledge text and lay out the corpus document."""

from datetime import datetime, timezone
from typing import List, Sequence


def split_text_into_chunks(text: str, chunk_size: int = 1000, overlap: int = 200) -> List[str]:
    """Fixed-size character windows, each starting `chunk_size - overlap` after the previous one."""
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    if overlap < 0 or overlap >= chunk_size:
        raise ValueError("overlap must be in [0, chunk_size)")

    chunks = []
    step = chunk_size - overlap
    for start in range(0, len(text), step):
        chunk = text[start : start + chunk_size].strip()
        if chunk:
            chunks.append(chunk)
    return chunks


def build_corpus_document(
    chunks: Sequence[str],
    vectors: Sequence[Sequence[float]],
    *,
    model: str,
    chunk_size: int,
    chunk_overlap: int,
) -> dict:
    if len(chunks) != len(vectors):
        raise ValueError(f"{len(chunks)} chunks but {len(vectors)} vectors")
    if not chunks:
        raise ValueError("Corpus would be empty")

    return {
        "metadata": {
            "model": model,
            "embeddingDimension": len(vectors[0]),
            "chunkSize": chunk_size,
            "chunkOverlap": chunk_overlap,
            "totalChunks": len(chunks),
            "generatedAt": datetime.now(timezone.utc).isoformat(),
        },
        "chunks": [
            {
                "id": index,
                "text": text,
                "vector": list(vector),
                "metadata": {"length": len(text), "index": index},
            }
            for index, (text, vector) in enumerate(zip(chunks, vectors))
        ],
    }
