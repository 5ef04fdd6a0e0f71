"""
Semantic similarity between user text and topic keywords.
"""
import logging
from typing import Sequence

import numpy as np

from clients.embeddings.model_loader import EmbeddingBackend

logger = logging.getLogger(__name__)

# Returned for an empty keyword set; never exceeds a threshold under strict >
NO_SIMILARITY = -1.0


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """
    Cosine similarity of two unit vectors.

    Backend vectors are already L2-normalized, so this is the dot product.
    """
    return float(np.dot(a, b))


class SemanticScorer:
    """Scores text against keywords with a single batched embedding call."""

    async def score(self, backend: EmbeddingBackend, text: str, keywords: Sequence[str]) -> float:
        """
        Maximum cosine similarity between text and any keyword.

        Args:
            backend: Loaded embedding backend
            text: User text
            keywords: Topic keywords

        Returns:
            Similarity in [-1, 1], or NO_SIMILARITY when keywords is empty

        Raises:
            Whatever the backend raises; the relevance gate maps it to a
            fail-open decision.
        """
        if not keywords:
            return NO_SIMILARITY

        batch = await backend.embed([text, *keywords])
        try:
            vectors = np.asarray(batch.array(), dtype=np.float32)
            if vectors.ndim != 2 or vectors.shape[0] != len(keywords) + 1:
                raise ValueError(
                    f"Embedding backend returned shape {vectors.shape} for {len(keywords) + 1} inputs"
                )
            # tolist() copies out of the batch before it is released
            similarities = (vectors[1:] @ vectors[0]).tolist()
        finally:
            batch.release()

        return float(max(similarities))
