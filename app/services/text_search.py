from __future__ import annotations

import re
from collections import Counter
from dataclasses import dataclass

_TOKEN_RE = re.compile(r"\w+", re.UNICODE)

# "simple" configuration: lowercase words, no stemming, no stop words
MIN_TOKEN_LEN = 1


def tokenize(text: str | None) -> list[str]:
    if not text:
        return []
    return [t for t in _TOKEN_RE.findall(text.lower()) if len(t) >= MIN_TOKEN_LEN]


def build_search_vector(title: str | None, description: str | None) -> str:
    """
    Derived search column: the token stream of title + description, space separated
    and space padded so `LIKE '% term %'` matches whole tokens only.
    """
    tokens = tokenize(title) + tokenize(description)
    if not tokens:
        return ""
    return " " + " ".join(tokens) + " "


def query_terms(q: str | None) -> list[str]:
    # distinct, in first-seen order
    seen: dict[str, None] = {}
    for t in tokenize(q):
        seen.setdefault(t, None)
    return list(seen)


def like_pattern(term: str) -> str:
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"% {escaped} %"


@dataclass(frozen=True)
class TextScore:
    matched_terms: int
    hits: int

    @property
    def relevance(self) -> float:
        # whole part = distinct matched terms, so 2-term matches always outrank 1-term matches
        if not self.matched_terms:
            return 0.0
        return self.matched_terms + self.hits / (self.hits + 1)


def score(search_vector: str | None, terms: list[str]) -> TextScore:
    if not search_vector or not terms:
        return TextScore(0, 0)
    counts = Counter(search_vector.split())
    matched = [counts[t] for t in terms if counts.get(t)]
    return TextScore(matched_terms=len(matched), hits=sum(matched))
