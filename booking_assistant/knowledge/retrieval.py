"""Relevance ranking over the knowledge base.

Two strategies share one result type:

* **semantic** — cosine similarity between the query embedding and each
  cached document embedding, scaled to 0-100.  Hits at or below
  ``SEMANTIC_SCORE_FLOOR`` are dropped.
* **keyword** — synonym-expanded substring matching: +10 per term found in
  the title, +1 per occurrence in the content.  Hits at or below
  ``KEYWORD_SCORE_FLOOR`` are dropped.

The two score scales are independent and never compared with each other.
Both strategies justify a hit with :func:`extract_excerpt`.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping, Sequence

import numpy as np

from booking_assistant.knowledge.models import (
    KnowledgeDocument,
    SearchResult,
    VectorStoreEntry,
)

SEMANTIC_SCORE_FLOOR = 20
KEYWORD_SCORE_FLOOR = 0
TITLE_MATCH_WEIGHT = 10

EXCERPT_MAX_LENGTH = 300
EXCERPT_CONTEXT_SENTENCES = 2
ELLIPSIS = "..."

_SENTENCE_RE = re.compile(r"[^.!?]+[.!?]+")

# canonical term → synonyms.  Membership is symmetric: matching any word
# of a group pulls in the whole group.
SYNONYMS: dict[str, list[str]] = {
    "cancel": ["cancelation", "cancelling", "reschedule", "abort", "terminate"],
    "appointment": ["meeting", "session", "consultation", "booking", "reservation"],
    "reschedule": ["change", "move", "adjust", "shift", "postpone"],
    "virtual": ["online", "remote", "digital", "video", "teleconference"],
    "policy": ["rule", "guideline", "regulation", "procedure", "protocol"],
    "fee": ["charge", "cost", "payment", "price", "expense"],
    "late": ["tardy", "delayed", "behind schedule", "not on time"],
    "available": ["free", "open", "vacant", "accessible", "obtainable"],
    "unavailable": ["busy", "occupied", "booked", "reserved", "taken"],
    "doctor": ["physician", "specialist", "practitioner", "clinician"],
    "location": ["place", "venue", "site", "facility", "address"],
    "time": ["schedule", "slot", "hour", "period", "duration"],
}


# ── Similarity ──────────────────────────────────────────────────────


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine of the angle between *a* and *b*.

    Vectors of different length, empty vectors and zero vectors are not
    comparable and score 0.
    """
    if len(a) == 0 or len(a) != len(b):
        return 0.0
    va = np.asarray(a, dtype=float)
    vb = np.asarray(b, dtype=float)
    norm_a = np.linalg.norm(va)
    norm_b = np.linalg.norm(vb)
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return float(np.dot(va, vb) / (norm_a * norm_b))


# ── Query expansion ─────────────────────────────────────────────────


def tokenize(query: str) -> list[str]:
    """Lower-cased whitespace tokens longer than two characters."""
    return [token for token in query.lower().split() if len(token) > 2]


def expand_terms(tokens: Iterable[str]) -> list[str]:
    """Add every synonym group a token belongs to.  Order is stable, no duplicates."""
    expanded: dict[str, None] = {}
    for token in tokens:
        expanded[token] = None
        for term, synonyms in SYNONYMS.items():
            if token == term or token in synonyms:
                expanded[term] = None
                expanded.update(dict.fromkeys(synonyms))
    return list(expanded)


def query_terms(query: str) -> list[str]:
    return expand_terms(tokenize(query))


# ── Excerpts ────────────────────────────────────────────────────────


def _truncate(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return text[: max_length - len(ELLIPSIS)] + ELLIPSIS


def extract_excerpt(content: str, query: str, max_length: int = EXCERPT_MAX_LENGTH) -> str:
    """Return the passage of *content* that best matches *query*.

    The best sentence (most distinct query terms, first one on ties) is
    returned together with up to two neighbouring sentences on each side.
    Content without sentence punctuation falls back to a plain prefix.
    """
    sentences = [s.strip() for s in _SENTENCE_RE.findall(content)]
    if not sentences:
        return content[:max_length] + (ELLIPSIS if len(content) > max_length else "")

    terms = query_terms(query)
    scores = [
        sum(1 for term in terms if term in sentence.lower())
        for sentence in sentences
    ]
    best = scores.index(max(scores))

    start = max(0, best - EXCERPT_CONTEXT_SENTENCES)
    end = min(len(sentences), best + EXCERPT_CONTEXT_SENTENCES + 1)
    return _truncate(" ".join(sentences[start:end]), max_length)


# ── Ranking ─────────────────────────────────────────────────────────


def keyword_score(document: KnowledgeDocument, terms: Iterable[str]) -> int:
    title = document.title.lower()
    content = document.content.lower()
    score = 0
    for term in terms:
        if term in title:
            score += TITLE_MATCH_WEIGHT
        score += content.count(term)
    return score


def keyword_search(
    query: str,
    documents: Iterable[KnowledgeDocument],
    max_results: int = 3,
) -> list[SearchResult]:
    """Rank *documents* by synonym-expanded keyword matches."""
    terms = query_terms(query)
    scored: list[tuple[int, KnowledgeDocument]] = []
    for doc in documents:
        score = keyword_score(doc, terms)
        if score > KEYWORD_SCORE_FLOOR:
            scored.append((score, doc))

    scored.sort(key=lambda item: item[0], reverse=True)
    return [
        SearchResult(
            document_id=doc.id,
            title=doc.title,
            excerpt=extract_excerpt(doc.content, query),
            relevance_score=score,
        )
        for score, doc in scored[:max_results]
    ]


def rank_by_similarity(
    query: str,
    query_vector: Sequence[float],
    documents: Mapping[str, KnowledgeDocument],
    entries: Iterable[VectorStoreEntry],
    max_results: int = 3,
) -> list[SearchResult]:
    """Rank vector store entries against an already-embedded query.

    Entries whose document is not in *documents* are skipped.
    """
    scored: list[tuple[float, KnowledgeDocument]] = []
    for entry in entries:
        doc = documents.get(entry.document_id)
        if doc is None:
            continue
        score = cosine_similarity(query_vector, entry.embedding) * 100
        if score > SEMANTIC_SCORE_FLOOR:
            scored.append((score, doc))

    scored.sort(key=lambda item: item[0], reverse=True)
    return [
        SearchResult(
            document_id=doc.id,
            title=doc.title,
            excerpt=extract_excerpt(doc.content, query),
            relevance_score=score,
        )
        for score, doc in scored[:max_results]
    ]
