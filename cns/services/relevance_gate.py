"""
Relevance Gate - decides whether user text is in scope for a topic.

Checks run cheapest first and stop at the first decision:

1. Greetings and acknowledgements are always allowed.
2. Text containing a topic keyword is allowed without inference.
3. The semantic pipeline (embedding similarity, or the lexical fallback when
   the embedding backend failed to load) races a timeout. Whichever settles
   first decides; a timeout allows the message.

Internal faults never block a user: every error in the pipeline maps to
RELEVANT. The generation service's system instruction remains the final
scope check for anything the gate lets through.
"""
import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

from clients.embeddings.model_loader import EmbeddingModelLoader, get_model_loader
from cns.services.fallback_scorer import FallbackScorer
from cns.services.semantic_scorer import SemanticScorer
from config.config import ValidationConfig

logger = logging.getLogger(__name__)

ALWAYS_ALLOWED = (
    "hello", "hi", "hey", "greetings", "bye", "goodbye", "thanks", "thank you",
    "ok", "okay", "yes", "no", "what", "who", "how", "why", "help",
)


class RelevanceOutcome(Enum):
    RELEVANT = "relevant"
    NOT_RELEVANT = "not_relevant"


class DecisionReason(Enum):
    GREETING = "greeting"
    KEYWORD = "keyword"
    SEMANTIC = "semantic"
    FALLBACK = "fallback"
    TIMEOUT = "timeout"
    ERROR = "error"


@dataclass(frozen=True)
class RelevanceDecision:
    outcome: RelevanceOutcome
    reason: DecisionReason
    score: Optional[float] = None

    @property
    def is_relevant(self) -> bool:
        return self.outcome is RelevanceOutcome.RELEVANT


def is_always_allowed(lower_text: str) -> bool:
    return any(lower_text == word or lower_text.startswith(word + " ") for word in ALWAYS_ALLOWED)


def contains_keyword(lower_text: str, keywords: Sequence[str]) -> bool:
    return any(keyword.lower() in lower_text for keyword in keywords)


class RelevanceGate:
    """
    Topic relevance gate.

    Args:
        loader: Embedding loader; defaults to the process-wide loader
        scorer: Semantic scorer
        fallback: Lexical scorer used when the backend is unavailable
        settings: Default threshold and timeout
    """

    def __init__(
        self,
        loader: Optional[EmbeddingModelLoader] = None,
        scorer: Optional[SemanticScorer] = None,
        fallback: Optional[FallbackScorer] = None,
        settings: Optional[ValidationConfig] = None,
    ):
        self.loader = loader or get_model_loader()
        self.scorer = scorer or SemanticScorer()
        self.fallback = fallback or FallbackScorer()
        self.settings = settings or ValidationConfig()

    async def evaluate(
        self,
        text: str,
        keywords: Sequence[str],
        threshold: Optional[float] = None,
        timeout_ms: Optional[int] = None,
    ) -> bool:
        decision = await self.assess(text, keywords, threshold, timeout_ms)
        return decision.is_relevant

    async def assess(
        self,
        text: str,
        keywords: Sequence[str],
        threshold: Optional[float] = None,
        timeout_ms: Optional[int] = None,
    ) -> RelevanceDecision:
        """
        Decide relevance of text for the keyword set.

        Never raises for backend faults and never waits longer than
        timeout_ms on the semantic pipeline.
        """
        threshold = self.settings.threshold if threshold is None else threshold
        timeout_ms = self.settings.timeout_ms if timeout_ms is None else timeout_ms
        keywords = tuple(k for k in keywords if k)
        lower_text = text.lower()

        if is_always_allowed(lower_text):
            return RelevanceDecision(RelevanceOutcome.RELEVANT, DecisionReason.GREETING)

        if contains_keyword(lower_text, keywords):
            return RelevanceDecision(RelevanceOutcome.RELEVANT, DecisionReason.KEYWORD)

        pipeline = asyncio.ensure_future(self._guarded_pipeline(text, keywords, threshold))
        try:
            done, _ = await asyncio.wait({pipeline}, timeout=timeout_ms / 1000)
        finally:
            # The loser is cancelled, also when the caller is; model acquisition is shielded
            if not pipeline.done():
                pipeline.cancel()

        if pipeline in done:
            return pipeline.result()

        logger.warning(f"Topic validation timed out after {timeout_ms}ms - defaulting to ALLOW")
        return RelevanceDecision(RelevanceOutcome.RELEVANT, DecisionReason.TIMEOUT)

    async def _guarded_pipeline(self, text: str, keywords: Sequence[str], threshold: float) -> RelevanceDecision:
        """Run the semantic pipeline, mapping any failure to RELEVANT."""
        try:
            return await self._semantic_pipeline(text, keywords, threshold)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Error during topic validation: {e}", exc_info=True)
            return RelevanceDecision(RelevanceOutcome.RELEVANT, DecisionReason.ERROR)

    async def _semantic_pipeline(self, text: str, keywords: Sequence[str], threshold: float) -> RelevanceDecision:
        load_result = await self.loader.load()

        if not load_result.ok:
            relevant = self.fallback.is_relevant(text, keywords)
            logger.debug(f"Fallback validation (backend unavailable: {load_result.error}) -> {relevant}")
            return RelevanceDecision(
                RelevanceOutcome.RELEVANT if relevant else RelevanceOutcome.NOT_RELEVANT,
                DecisionReason.FALLBACK,
            )

        score = await self.scorer.score(load_result.handle, text, keywords)
        logger.info(f"Topic relevance score: {score:.4f} (threshold: {threshold})")
        return RelevanceDecision(
            RelevanceOutcome.RELEVANT if score > threshold else RelevanceOutcome.NOT_RELEVANT,
            DecisionReason.SEMANTIC,
            score=score,
        )
