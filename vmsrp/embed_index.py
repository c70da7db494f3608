from __future__ import annotations

"""
Embedding storage and the dense encoder.

Item embeddings are produced offline by :func:`build_item_embeddings`
and persisted as a float32 ``.npy`` matrix plus a JSON list mapping
row index to catalog id.  At query time the pipeline only needs a
batch lookup by id (:class:`EmbeddingStore`) and an encoder for the
query text (:class:`Embedder`).  Items that were never embedded are
simply absent from the lookup result.
"""

import json
import time
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Protocol, Sequence

import numpy as np
from loguru import logger

from .config import (
    EMBED_BATCH_DELAY_SEC,
    EMBED_BATCH_SIZE,
    EMBED_TEXT_MAX_CHARS,
    EMBEDDINGS_PATH,
    ENCODER_MODEL,
    IDS_MAPPING_PATH,
    ensure_hf_env,
)
from .models import CatalogItem
from .normalize import format_curriculum, join_fields


class EmbeddingStore(Protocol):
    def get_embeddings(self, item_ids: Iterable[int]) -> Dict[int, np.ndarray]:
        ...


class Embedder(Protocol):
    def embed(self, text: str) -> np.ndarray:
        ...

    def embed_batch(self, texts: Sequence[str]) -> List[np.ndarray]:
        ...


# -----------------------------------------------------------------------------
# Store
# -----------------------------------------------------------------------------

class InMemoryEmbeddingStore:
    """Id -> vector mapping held in memory."""

    def __init__(self, vectors: Optional[Dict[int, Sequence[float]]] = None):
        self._vectors: Dict[int, np.ndarray] = {}
        for iid, vec in (vectors or {}).items():
            self._vectors[int(iid)] = np.asarray(vec, dtype="float32")

    def __len__(self) -> int:
        return len(self._vectors)

    def __contains__(self, item_id: int) -> bool:
        return item_id in self._vectors

    def get_embeddings(self, item_ids: Iterable[int]) -> Dict[int, np.ndarray]:
        return {i: self._vectors[i] for i in item_ids if i in self._vectors}


def load_embedding_store(
    embeddings_path: Path = EMBEDDINGS_PATH,
    ids_path: Path = IDS_MAPPING_PATH,
) -> InMemoryEmbeddingStore:
    """
    Load the item embedding matrix and its id map.

    Missing files yield an empty store so the scorer falls back to the
    default vector score for every item instead of failing.
    """
    if not embeddings_path.exists() or not ids_path.exists():
        logger.warning(
            "Embedding files missing ({} or {}); vector similarity will use defaults.",
            embeddings_path,
            ids_path,
        )
        return InMemoryEmbeddingStore()
    emb = np.load(embeddings_path, mmap_mode="r")
    with ids_path.open("r", encoding="utf-8") as f:
        ids = json.load(f)
    if emb.shape[0] != len(ids):
        raise ValueError(f"Embeddings ({emb.shape[0]}) and id map ({len(ids)}) length mismatch")
    logger.info("Loaded embeddings: shape={}, items={}", emb.shape, len(ids))
    return InMemoryEmbeddingStore({int(i): emb[row] for row, i in enumerate(ids)})


def save_embeddings(
    item_ids: Sequence[int],
    vectors: Sequence[np.ndarray],
    embeddings_path: Path = EMBEDDINGS_PATH,
    ids_path: Path = IDS_MAPPING_PATH,
) -> None:
    if vectors:
        matrix = np.vstack([np.asarray(v, dtype="float32") for v in vectors])
    else:
        matrix = np.zeros((0, 0), dtype="float32")
    embeddings_path.parent.mkdir(parents=True, exist_ok=True)
    np.save(embeddings_path, matrix, allow_pickle=False)
    ids_path.parent.mkdir(parents=True, exist_ok=True)
    with ids_path.open("w", encoding="utf-8") as f:
        json.dump([int(i) for i in item_ids], f)
    logger.info("Saved {} item embeddings to {}", len(item_ids), embeddings_path)


# -----------------------------------------------------------------------------
# Similarity
# -----------------------------------------------------------------------------

def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """Cosine similarity; zero-norm or mismatched vectors give 0.0."""
    a = np.asarray(a, dtype="float64")
    b = np.asarray(b, dtype="float64")
    if a.shape != b.shape or a.size == 0:
        return 0.0
    denom = float(np.linalg.norm(a) * np.linalg.norm(b))
    if denom == 0.0:
        return 0.0
    return float(np.dot(a, b) / denom)


# -----------------------------------------------------------------------------
# Encoder
# -----------------------------------------------------------------------------

class SentenceTransformerEmbedder:
    """Dense encoder backed by a multilingual BGE sentence-transformer."""

    def __init__(self, model_name: str = ENCODER_MODEL, model=None):
        self.model_name = model_name
        self._model = model

    @property
    def model(self):
        if self._model is None:
            from sentence_transformers import SentenceTransformer

            ensure_hf_env()
            logger.info("Loading dense encoder model: {}", self.model_name)
            self._model = SentenceTransformer(self.model_name)
        return self._model

    def embed(self, text: str) -> np.ndarray:
        vec = self.model.encode([text], convert_to_numpy=True, normalize_embeddings=True)[0]
        return vec.astype("float32")

    def embed_batch(self, texts: Sequence[str]) -> List[np.ndarray]:
        if not texts:
            return []
        vecs = self.model.encode(
            list(texts), batch_size=32, convert_to_numpy=True, normalize_embeddings=True
        )
        return [v.astype("float32") for v in vecs]


# -----------------------------------------------------------------------------
# Offline build
# -----------------------------------------------------------------------------

def item_embedding_text(item: CatalogItem, max_chars: int = EMBED_TEXT_MAX_CHARS) -> str:
    """
    Rich text representation of an item for the dense encoder.

    Includes the descriptive fields plus difficulty levels and the
    numeric metadata so that e.g. "입문" or a development year can
    influence similarity.
    """
    lines: List[str] = [f"과정명: {item.title}"]
    lines.append(
        "카테고리: "
        + join_fields([item.major_category, item.middle_category, item.minor_category], " > ")
    )
    if item.intro:
        lines.append(f"과정소개: {item.intro}")
    if item.objective:
        lines.append(f"학습목표: {item.objective}")
    if item.target_audience:
        lines.append(f"학습대상: {item.target_audience}")
    if item.curriculum:
        lines.append(f"학습내용: {format_curriculum(item.curriculum, limit=10)}")
    if item.detail:
        lines.append(f"세부내용: {item.detail}")
    levels = join_fields([item.level0, item.level1, item.level2, item.level3], " > ")
    if levels:
        lines.append(f"난이도: {levels}")
    lines.append(f"차시: {item.sessions}차시")
    lines.append(f"교육비: {item.fee}원")
    if item.development_year:
        lines.append(f"개발연도: {item.development_year}")
    text = "\n".join(lines)
    return text[:max_chars]


def build_item_embeddings(
    items: Sequence[CatalogItem],
    embedder: Embedder,
    batch_size: int = EMBED_BATCH_SIZE,
    delay_sec: float = EMBED_BATCH_DELAY_SEC,
    sleep=time.sleep,
) -> tuple[List[int], List[np.ndarray]]:
    """
    Embed every item in batches, pausing ``delay_sec`` between batches.

    A failing batch is logged and skipped; its items stay un-embedded
    and are scored with the default vector similarity later.
    """
    ids: List[int] = []
    vectors: List[np.ndarray] = []
    ordered = sorted(items, key=lambda it: it.id)
    total_batches = (len(ordered) + batch_size - 1) // batch_size
    failed = 0
    for b, start in enumerate(range(0, len(ordered), batch_size), 1):
        batch = ordered[start : start + batch_size]
        logger.info("Embedding batch {}/{} ({} items)", b, total_batches, len(batch))
        try:
            vecs = embedder.embed_batch([item_embedding_text(it) for it in batch])
        except Exception as e:
            failed += len(batch)
            logger.warning("Embedding batch {} failed: {}", b, e)
        else:
            if len(vecs) != len(batch):
                raise ValueError(f"Embedder returned {len(vecs)} vectors for {len(batch)} texts")
            ids.extend(it.id for it in batch)
            vectors.extend(vecs)
        if b < total_batches and delay_sec > 0:
            sleep(delay_sec)
    logger.info("Embedded {} items ({} failed)", len(ids), failed)
    return ids, vectors
