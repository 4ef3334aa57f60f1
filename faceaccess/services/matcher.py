"""
Nearest-neighbour search over stored face embeddings.

Populations are small enough for an exhaustive L2 scan; the closest
candidate wins and ties keep the first candidate in population order.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from ..core.config import settings
from ..core.exceptions import InvalidEmbeddingError


@dataclass(frozen=True)
class Candidate:
    candidate_id: str
    distance: float


def validate_embedding(value: Any, dimension: Optional[int] = None) -> List[float]:
    """Return the embedding as a list of floats or raise InvalidEmbeddingError"""
    dimension = dimension or settings.embedding_dimension
    if not isinstance(value, (list, tuple)):
        raise InvalidEmbeddingError("Missing or invalid faceEmbedding in request body.")
    if len(value) != dimension:
        raise InvalidEmbeddingError(
            f"faceEmbedding must be an array of {dimension} numbers, got {len(value)}."
        )
    embedding = []
    for item in value:
        # bool is an int subclass but never a valid coordinate
        if isinstance(item, bool) or not isinstance(item, (int, float)):
            raise InvalidEmbeddingError("faceEmbedding must contain only numbers.")
        try:
            coordinate = float(item)
        except OverflowError:
            # JSON integers are unbounded
            coordinate = math.inf
        if not math.isfinite(coordinate):
            raise InvalidEmbeddingError("faceEmbedding must contain only finite numbers.")
        embedding.append(coordinate)
    return embedding


def l2_distance(a: Sequence[float], b: Sequence[float]) -> float:
    return float(np.linalg.norm(np.asarray(a, dtype=np.float64) - np.asarray(b, dtype=np.float64)))


def find_closest(
    query: Sequence[float],
    population: Iterable[Tuple[str, Sequence[float]]],
) -> Optional[Candidate]:
    """
    Find the stored embedding closest to ``query``.

    Args:
        query: Validated query embedding
        population: ``(candidate_id, embedding)`` pairs

    Returns:
        The minimum-distance Candidate, or None for an empty population
    """
    ids = []
    vectors = []
    for candidate_id, embedding in population:
        if embedding is None or len(embedding) != len(query):
            # Rows written with another extractor dimension cannot be compared
            continue
        ids.append(candidate_id)
        vectors.append(embedding)

    if not ids:
        return None

    matrix = np.asarray(vectors, dtype=np.float64)
    distances = np.linalg.norm(matrix - np.asarray(query, dtype=np.float64), axis=1)
    best = int(np.argmin(distances))  # argmin keeps the first index on ties
    return Candidate(candidate_id=ids[best], distance=float(distances[best]))
