# services/api/core/suggestions.py
"""
Autocomplete suggestions learned from a project's stored entries.

Values are de-duplicated case-insensitively (first spelling wins), ranked by
how often they occur, then alphabetically. A query narrows and re-ranks the
list: exact match first, then prefix matches, then substring matches.
"""
from __future__ import annotations

import logging
from collections import Counter
from typing import Any, Dict, Iterable, List, Optional

from cachetools import TTLCache

logger = logging.getLogger(__name__)

SUGGESTION_FIELDS = (
    "part_name",
    "op_number",
    "observation",
    "action_plan",
    "responsibility",
    "remarks",
)

MAX_SUGGESTIONS = 10


def build_suggestions(entries: Iterable[Dict[str, Any]]) -> Dict[str, List[str]]:
    """
    {field: [distinct values, most frequent first]} for every suggestion field.
    """
    entries = list(entries)
    out: Dict[str, List[str]] = {}
    for field in SUGGESTION_FIELDS:
        counts: Counter = Counter()
        spelling: Dict[str, str] = {}
        for e in entries:
            value = str(e.get(field) or "").strip()
            if not value:
                continue
            key = value.lower()
            spelling.setdefault(key, value)
            counts[key] += 1
        ranked = sorted(spelling.values(), key=lambda v: (-counts[v.lower()], v.lower()))
        out[field] = ranked
    return out


def rank_matches(values: List[str], query: str, limit: int = MAX_SUGGESTIONS) -> List[str]:
    q = (query or "").strip().lower()
    if not q:
        return values[:limit]

    exact, prefix, contains = [], [], []
    for v in values:
        low = v.lower()
        if low == q:
            exact.append(v)
        elif low.startswith(q):
            prefix.append(v)
        elif q in low:
            contains.append(v)
    return (exact + prefix + contains)[:limit]


class SuggestionIndex:
    """
    Per-project suggestion lists, recomputed at most once per TTL.
    Call `invalidate(project_id)` after a sync so new values show up.
    """

    def __init__(self, ttl: float = 60.0, maxsize: int = 128):
        self._cache: TTLCache = TTLCache(maxsize=maxsize, ttl=ttl)

    def get(self, project_id: str) -> Optional[Dict[str, List[str]]]:
        return self._cache.get(project_id)

    def put(self, project_id: str, entries: Iterable[Dict[str, Any]]) -> Dict[str, List[str]]:
        built = build_suggestions(entries)
        self._cache[project_id] = built
        return built

    def invalidate(self, project_id: str) -> None:
        self._cache.pop(project_id, None)

    def lookup(self, project_id: str, field: str, query: str = "") -> List[str]:
        lists = self.get(project_id) or {}
        return rank_matches(lists.get(field, []), query)
