"""In-process store for the pre-computed retrieval corpus."""

import json
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Sequence

from chat_relay.logging_config import get_logger
from chat_relay.services.result import Result

logger = get_logger("chunk_store")

KEYWORD_MIN_LENGTH = 3


class StoreNotReadyError(RuntimeError):
    """Raised when searching a store that has no corpus loaded."""


class CorpusLoadError(ValueError):
    pass


@dataclass(frozen=True)
class Chunk:
    id: int
    text: str
    vector: tuple[float, ...]
    length_meta: dict = field(default_factory=dict)


@dataclass(frozen=True)
class RetrievalResult:
    chunk_id: int
    text: str
    similarity: float


@dataclass(frozen=True)
class Corpus:
    chunks: tuple[Chunk, ...]
    metadata: dict
    dimension: int
    source: str


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    if len(a) != len(b):
        raise ValueError(f"Vector dimension mismatch: {len(a)} != {len(b)}")
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


def keyword_similarity(query: str, text: str) -> float:
    """Share of the query's longer terms found as substrings of `text`, in [0, 1]."""
    terms = [word for word in query.lower().split() if len(word) > KEYWORD_MIN_LENGTH]
    text_lower = text.lower()
    matches = sum(1 for word in terms if word in text_lower)
    return matches / max(len(terms), 1)


def _rank(scored: list[RetrievalResult], top_k: int) -> list[RetrievalResult]:
    # Stable ordering: similarity desc, then chunk id asc.
    scored.sort(key=lambda item: (-item.similarity, item.chunk_id))
    return scored[:top_k]


def _parse_corpus(raw: object, source: str) -> Corpus:
    if not isinstance(raw, dict):
        raise CorpusLoadError("Corpus root must be an object")

    metadata = raw.get("metadata") or {}
    if not isinstance(metadata, dict):
        raise CorpusLoadError("Corpus metadata must be an object")

    # Older corpus files keep the list under "embeddings" and the vector under "embedding".
    items = raw.get("chunks")
    if items is None:
        items = raw.get("embeddings")
    if not isinstance(items, list):
        raise CorpusLoadError("Corpus has no chunk list")

    chunks: list[Chunk] = []
    dimension: Optional[int] = None
    for position, item in enumerate(items):
        if not isinstance(item, dict):
            raise CorpusLoadError(f"Chunk #{position} is not an object")
        text = item.get("text")
        vector = item.get("vector", item.get("embedding"))
        if not isinstance(text, str):
            raise CorpusLoadError(f"Chunk #{position} has no text")
        if not isinstance(vector, list) or not vector:
            raise CorpusLoadError(f"Chunk #{position} has no vector")
        try:
            values = tuple(float(value) for value in vector)
            chunk_id = int(item.get("id", position))
        except (TypeError, ValueError) as exc:
            raise CorpusLoadError(f"Chunk #{position} is malformed: {exc}") from exc
        if dimension is None:
            dimension = len(values)
        elif len(values) != dimension:
            raise CorpusLoadError(f"Chunk #{position} has dimension {len(values)}, expected {dimension}")
        length_meta = item.get("metadata") if isinstance(item.get("metadata"), dict) else {}
        chunks.append(Chunk(id=chunk_id, text=text, vector=values, length_meta=length_meta))

    declared = metadata.get("embeddingDimension")
    if declared is not None and dimension is not None:
        try:
            declared_dimension = int(declared)
        except (TypeError, ValueError) as exc:
            raise CorpusLoadError(f"Declared dimension {declared!r} is not an integer") from exc
        if declared_dimension != dimension:
            raise CorpusLoadError(f"Declared dimension {declared} does not match vectors ({dimension})")

    return Corpus(chunks=tuple(chunks), metadata=metadata, dimension=dimension or 0, source=source)


class ChunkStore:
    """Fixed collection of (text, vector) chunks answering nearest-neighbour queries.

    The loaded corpus is replaced by a single reference assignment, so callers
    see either the previous corpus or the new one, never a mix.
    """

    def __init__(self, path: str | Path | None = None) -> None:
        self.path = Path(path) if path else None
        self._corpus: Optional[Corpus] = None

    def load(self, path: str | Path | None = None) -> Result[None]:
        target = Path(path) if path else self.path
        if target is None:
            return Result.failure("No corpus path configured", "corpus_missing")

        if not target.exists():
            logger.warning(
                "Corpus file not found - run scripts/generate_embeddings.py",
                extra={"context": {"path": str(target)}},
            )
            return Result.failure(f"Corpus file not found: {target}", "corpus_missing")

        try:
            raw = json.loads(target.read_text(encoding="utf-8"))
            corpus = _parse_corpus(raw, str(target))
        except (OSError, ValueError, CorpusLoadError) as exc:
            logger.error("Corpus load failed", extra={"context": {"path": str(target), "error": str(exc)}})
            return Result.from_exception(exc, "corpus_malformed")

        self._corpus = corpus
        self.path = target
        logger.info(
            "Corpus loaded",
            extra={"context": {"path": str(target), "chunks": len(corpus.chunks), "dimension": corpus.dimension}},
        )
        return Result.success(None)

    def reload(self) -> Result[None]:
        return self.load(self.path)

    def is_ready(self) -> bool:
        return self._corpus is not None

    def _require_corpus(self) -> Corpus:
        corpus = self._corpus
        if corpus is None:
            raise StoreNotReadyError("Retrieval corpus is not loaded")
        return corpus

    def search(self, query_vector: Sequence[float], top_k: int) -> list[RetrievalResult]:
        corpus = self._require_corpus()
        if top_k <= 0:
            return []
        if corpus.dimension and len(query_vector) != corpus.dimension:
            raise ValueError(f"Query vector has dimension {len(query_vector)}, corpus uses {corpus.dimension}")
        scored = [
            RetrievalResult(chunk_id=chunk.id, text=chunk.text, similarity=cosine_similarity(query_vector, chunk.vector))
            for chunk in corpus.chunks
        ]
        return _rank(scored, top_k)

    def keyword_search(self, query_text: str, top_k: int) -> list[RetrievalResult]:
        corpus = self._require_corpus()
        if top_k <= 0:
            return []
        scored = [
            RetrievalResult(chunk_id=chunk.id, text=chunk.text, similarity=keyword_similarity(query_text, chunk.text))
            for chunk in corpus.chunks
        ]
        return _rank(scored, top_k)

    def info(self) -> Optional[dict]:
        corpus = self._corpus
        if corpus is None:
            return None
        return {
            "totalChunks": len(corpus.chunks),
            "model": corpus.metadata.get("model"),
            "embeddingDimension": corpus.dimension,
            "chunkSize": corpus.metadata.get("chunkSize"),
            "chunkOverlap": corpus.metadata.get("chunkOverlap"),
            "generatedAt": corpus.metadata.get("generatedAt"),
        }

    @property
    def embedding_model(self) -> Optional[str]:
        corpus = self._corpus
        return corpus.metadata.get("model") if corpus else None
