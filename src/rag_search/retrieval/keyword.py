"""Keyword scoring by query-term overlap."""

import re
from typing import Iterable

_TOKEN = re.compile(r"[^\W_]+")


def tokenize(text: str) -> list[str]:
    """
    Tokenize text into lowercase alphanumeric terms.

    Splits on whitespace, punctuation and underscores; keeps digits so
    error codes and version numbers stay searchable.
    """
    return _TOKEN.findall(text.lower())


def term_set(text: str) -> frozenset[str]:
    return frozenset(tokenize(text))


def keyword_score(query_terms: Iterable[str], document_terms: frozenset[str]) -> float:
    """
    Fraction of query terms present in the document, in [0, 1].

    Repeated query terms count once per occurrence, so "bread bread flour"
    against a document containing only "bread" scores 2/3.
    """
    query_terms = list(query_terms)
    if not query_terms:
        return 0.0
    matched = sum(1 for term in query_terms if term in document_terms)
    return matched / len(query_terms)
