"""
Lexical relevance heuristic used when the embedding backend is unavailable.

Only obviously unrelated text is rejected; the system instruction still
declines off-topic questions that slip through.
"""
import re
from typing import Sequence, Set

_TOKEN_SPLIT = re.compile(r"\W+")
MIN_SHARED_TOKEN_LENGTH = 4


def _tokens(text: str) -> Set[str]:
    return {token for token in _TOKEN_SPLIT.split(text.lower()) if token}


class FallbackScorer:

    @staticmethod
    def is_relevant(text: str, keywords: Sequence[str]) -> bool:
        lower_text = text.lower()

        if any(keyword and keyword.lower() in lower_text for keyword in keywords):
            return True

        keyword_tokens: Set[str] = set()
        for keyword in keywords:
            keyword_tokens |= _tokens(keyword)

        return any(
            len(token) >= MIN_SHARED_TOKEN_LENGTH and token in keyword_tokens
            for token in _tokens(text)
        )
