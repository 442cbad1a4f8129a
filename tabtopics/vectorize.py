"""Sparse term vectors and cosine similarity for tabs."""
import math
import re
from typing import Dict, Iterable, List, Optional, Tuple

STOP_WORDS = {
    "home", "page", "login", "search", "google", "index", "dashboard",
    "welcome", "portal", "navigation", "html", "php", "youtube", "video",
    "watch", "https", "http", "www", "com", "org", "net", "query", "results",
    "view", "brave", "bing", "yahoo", "duckduckgo", "tab", "browser",
}

MIN_TERM_LENGTH = 4

# Lowercase alphanumeric tokens that read as a number: 2024, 1e10, 0x1f.
NUMERIC = re.compile(r"\d+(?:e\d+)?|0x[0-9a-f]+|0o[0-7]+|0b[01]+")

TermVector = Dict[str, float]


def is_term(token: str, domain: str = "") -> bool:
    if len(token) < MIN_TERM_LENGTH:
        return False
    if token in STOP_WORDS:
        return False
    if NUMERIC.fullmatch(token):
        return False
    return token != domain


def build_vector(streams: Iterable[Tuple[List[str], float]], domain: str = "") -> TermVector:
    """Merge weighted token streams into one term vector.

    Each stream is a (tokens, weight) pair; weight is added once per
    occurrence, across streams as well as within one.
    """
    vector: TermVector = {}
    for tokens, weight in streams:
        for token in tokens:
            if is_term(token, domain):
                vector[token] = vector.get(token, 0.0) + weight
    return vector


def merge_vectors(vectors: Iterable[TermVector]) -> TermVector:
    merged: TermVector = {}
    for vector in vectors:
        for term, weight in vector.items():
            merged[term] = merged.get(term, 0.0) + weight
    return merged


def cosine_similarity(a: Optional[TermVector], b: Optional[TermVector]) -> float:
    if not a or not b:
        return 0.0
    # Terms outside the intersection contribute zero; sorting keeps the sum symmetric.
    dot = 0.0
    for term in sorted(a.keys() & b.keys()):
        dot += a[term] * b[term]
    norm_a = math.sqrt(sum(w * w for w in a.values()))
    norm_b = math.sqrt(sum(w * w for w in b.values()))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    return min(1.0, dot / (norm_a * norm_b))
