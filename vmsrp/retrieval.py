from __future__ import annotations

"""
Stage 2: coarse candidate retrieval from the catalog store.

The store is asked for items whose title, intro, objective or any of
the three category fields contains any primary or secondary keyword,
capped and ordered by development year.  Items mentioning an exclusion
keyword are then removed client-side.  Without keywords the most
recent items form the candidate pool instead.  Ordering beyond the
store's recency sort is not guaranteed; the scorer re-sorts.
"""

from typing import List

from loguru import logger

from .catalog import TEXT_SEARCH_FIELDS, CatalogStore
from .config import DEFAULT_CONFIG, PipelineConfig
from .models import CatalogItem, SearchIntent
from .normalize import contains_any, join_fields


def exclusion_text(item: CatalogItem) -> str:
    return join_fields([item.title, item.intro, item.objective])


def apply_exclusions(items: List[CatalogItem], exclusions: List[str]) -> List[CatalogItem]:
    """Drop items whose title/intro/objective mention any exclusion keyword."""
    needles = [e.lower() for e in exclusions if e and e.strip()]
    if not needles:
        return list(items)
    kept = [it for it in items if not contains_any(exclusion_text(it), needles)]
    if len(kept) < len(items):
        logger.info("Exclusion keywords removed {} candidates", len(items) - len(kept))
    return kept


def hard_filter(
    intent: SearchIntent,
    catalog: CatalogStore,
    config: PipelineConfig = DEFAULT_CONFIG,
) -> List[CatalogItem]:
    keywords = intent.search_keywords()
    limit = config.candidate_limit
    if not keywords:
        logger.warning("No intent keywords; falling back to the {} most recent items", limit)
        return catalog.recent(limit)

    candidates = catalog.search(keywords, TEXT_SEARCH_FIELDS, limit)
    logger.info("Catalog search with {} keywords returned {} items", len(keywords), len(candidates))
    return apply_exclusions(candidates, intent.exclusions())
