from __future__ import annotations

"""
Stage 1: turn a learning goal into a structured search intent.

One completion call asks the model for a fixed JSON shape.  If the
call fails or the reply cannot be parsed into a :class:`SearchIntent`,
a deterministic extractor takes over: the goal is split into tokens,
the first five become primary keywords and the domain is detected by
substring matching against the domain table.  There are no retries.
"""

from typing import Optional

from loguru import logger
from pydantic import ValidationError

from .config import (
    DEFAULT_CONFIG,
    DEFAULT_DOMAIN,
    DEFAULT_TARGET_LEVEL,
    DOMAIN_CATEGORIES,
    MAX_PRIMARY_KEYWORDS,
    MIN_FALLBACK_TOKEN_LEN,
    PipelineConfig,
)
from .llm import CompletionClient, CompletionOptions, chat, extract_json_block
from .models import RequirementProfile, SearchIntent
from .normalize import split_goal
from .prompts import INTENT_SYSTEM, build_intent_prompt

# camelCase keys the prompt asks for -> model field names
_FIELD_MAP = {
    "primaryKeywords": "primary_keywords",
    "secondaryKeywords": "secondary_keywords",
    "domain": "domain",
    "targetLevel": "target_level",
    "exclusionKeywords": "exclusion_keywords",
    "technicalStack": "technical_stack",
}


def detect_domain(text: str, industry: Optional[str] = None) -> str:
    """First domain whose keyword list hits ``text`` (+ industry); else the default."""
    haystack = f"{text or ''} {industry or ''}".lower()
    for domain, keywords in DOMAIN_CATEGORIES.items():
        if any(kw.lower() in haystack for kw in keywords):
            return domain
    return DEFAULT_DOMAIN


def extract_intent_fallback(profile: RequirementProfile) -> SearchIntent:
    goal = profile.learning_goal or ""
    tokens = split_goal(goal, min_len=MIN_FALLBACK_TOKEN_LEN)
    return SearchIntent(
        primary_keywords=tokens[:MAX_PRIMARY_KEYWORDS],
        secondary_keywords=[],
        domain=detect_domain(goal, profile.industry),
        target_level=profile.skill_level or DEFAULT_TARGET_LEVEL,
        exclusion_keywords=[],
        technical_stack=[],
    )


def parse_intent(raw: dict, profile: RequirementProfile) -> SearchIntent:
    """
    Validate a model reply into a :class:`SearchIntent`.

    Unknown domains are replaced by :func:`detect_domain`; a missing
    level falls back to the profile's skill level.
    """
    if not isinstance(raw, dict):
        raise ValueError(f"intent payload must be an object, got {type(raw).__name__}")
    data = {}
    for key, value in raw.items():
        field = _FIELD_MAP.get(key, key)
        if field in SearchIntent.model_fields:
            data[field] = value
    intent = SearchIntent(**{k: v for k, v in data.items() if v is not None})
    if intent.domain not in DOMAIN_CATEGORIES:
        intent.domain = detect_domain(profile.learning_goal or "", profile.industry)
    if not raw.get("targetLevel") and profile.skill_level:
        intent.target_level = profile.skill_level
    return intent


async def extract_intent(
    profile: RequirementProfile,
    completion: CompletionClient,
    config: PipelineConfig = DEFAULT_CONFIG,
) -> SearchIntent:
    """Single LLM attempt, then the deterministic fallback.  Never raises on bad replies."""
    options = CompletionOptions(model=config.models.intent_extraction, temperature=0.1)
    try:
        reply = await completion.complete(chat(INTENT_SYSTEM, build_intent_prompt(profile)), options)
    except Exception as e:
        logger.warning("Intent extraction call failed: {}; using fallback extractor", e)
        return extract_intent_fallback(profile)

    block = extract_json_block(reply, "{")
    if not block.ok:
        logger.warning("Intent reply not parseable ({}); using fallback extractor", block.error)
        return extract_intent_fallback(profile)
    try:
        intent = parse_intent(block.value, profile)
    except (ValidationError, ValueError) as e:
        logger.warning("Intent reply failed validation: {}; using fallback extractor", e)
        return extract_intent_fallback(profile)
    logger.info(
        "Intent: primary={} secondary={} domain={} exclusions={}",
        intent.primary_keywords,
        intent.secondary_keywords,
        intent.domain,
        intent.exclusion_keywords,
    )
    return intent
