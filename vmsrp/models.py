from __future__ import annotations
"""
Pydantic schemas shared across the pipeline.

These are the objects that cross a module boundary: catalog items as
returned by the catalog store, the user's requirement profile, the
search intent produced by stage 1, the package record handed to the
persistence sink and the two shapes the pipeline can return
(:class:`RecommendationResult` or :class:`RecommendationError`).
Per-stage working types (scored items, judgments, verification
outcomes) live as dataclasses in their own stage modules.
"""

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .config import (
    DEFAULT_DOMAIN,
    DEFAULT_TARGET_LEVEL,
    MAX_EXCLUSION_KEYWORDS,
    MAX_PRIMARY_KEYWORDS,
    MAX_SECONDARY_KEYWORDS,
    MAX_TECHNICAL_STACK,
)


class CatalogItem(BaseModel):
    id: int
    title: str
    major_category: str = ""
    middle_category: str = ""
    minor_category: str = ""
    level0: Optional[str] = None
    level1: Optional[str] = None
    level2: Optional[str] = None
    level3: Optional[str] = None
    intro: Optional[str] = None
    objective: Optional[str] = None
    target_audience: Optional[str] = None
    curriculum: List[str] = Field(default_factory=list)
    detail: Optional[str] = None
    fee: int = Field(default=0, ge=0)
    sessions: int = Field(default=0, ge=0)
    development_year: Optional[str] = None

    @field_validator("curriculum", mode="before")
    @classmethod
    def _coerce_curriculum(cls, raw):
        if raw is None:
            return []
        if isinstance(raw, str):
            return [p.strip() for p in raw.splitlines() if p.strip()]
        return [str(x) for x in raw if x is not None and str(x).strip()]

    def difficulty(self) -> str:
        return self.level0 or self.level1 or ""


class RequirementProfile(BaseModel):
    """
    Requirement collected from the user.  Every field may still be empty.

    Accepts both snake_case names and the camelCase keys used by the
    chat collection payload (``learningGoal``, ``skillLevel``, ...).
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    company: Optional[str] = None
    industry: Optional[str] = None
    employee_count: Optional[int] = None
    target_group: Optional[str] = None
    job_level: Optional[str] = None
    skill_level: Optional[str] = None
    learning_goal: Optional[str] = None
    duration: Optional[str] = None
    budget: Optional[int] = None


def _dedupe(words: List[str]) -> List[str]:
    seen = set()
    out: List[str] = []
    for w in words:
        key = w.strip().lower()
        if key and key not in seen:
            seen.add(key)
            out.append(w.strip())
    return out


class SearchIntent(BaseModel):
    primary_keywords: List[str] = Field(default_factory=list)
    secondary_keywords: List[str] = Field(default_factory=list)
    domain: str = DEFAULT_DOMAIN
    target_level: str = DEFAULT_TARGET_LEVEL
    exclusion_keywords: List[str] = Field(default_factory=list)
    technical_stack: List[str] = Field(default_factory=list)

    @field_validator(
        "primary_keywords", "secondary_keywords", "exclusion_keywords", "technical_stack",
        mode="before",
    )
    @classmethod
    def _clean_list(cls, raw):
        if raw is None:
            return []
        if isinstance(raw, str):
            raw = [raw]
        if not isinstance(raw, (list, tuple, set)):
            raise ValueError(f"expected a list of keywords, got {type(raw).__name__}")
        return _dedupe([str(x) for x in raw if x is not None])

    @field_validator("primary_keywords")
    @classmethod
    def _cap_primary(cls, v: List[str]) -> List[str]:
        return v[:MAX_PRIMARY_KEYWORDS]

    @field_validator("secondary_keywords")
    @classmethod
    def _cap_secondary(cls, v: List[str]) -> List[str]:
        return v[:MAX_SECONDARY_KEYWORDS]

    @field_validator("exclusion_keywords")
    @classmethod
    def _cap_exclusion(cls, v: List[str]) -> List[str]:
        return v[:MAX_EXCLUSION_KEYWORDS]

    @field_validator("technical_stack")
    @classmethod
    def _cap_stack(cls, v: List[str]) -> List[str]:
        return v[:MAX_TECHNICAL_STACK]

    def all_keywords(self) -> List[str]:
        """Primary + secondary keywords, de-duplicated case-insensitively."""
        return _dedupe(self.primary_keywords + self.secondary_keywords)

    def search_keywords(self) -> List[str]:
        return [k.lower() for k in self.all_keywords()]

    def exclusions(self) -> List[str]:
        return [k.lower() for k in self.exclusion_keywords]


class PackageItemRecord(BaseModel):
    content_id: int
    order: int = Field(ge=1)
    reason: str
    score: int = Field(ge=0, le=100)


class PackageRecord(BaseModel):
    name: str
    description: str
    target_company: str = ""
    target_group: str = ""
    requirements: str
    status: Literal["active", "archived"] = "active"
    items: List[PackageItemRecord] = Field(default_factory=list)


class SelectedContent(BaseModel):
    content_id: int
    order: int
    reason: str
    score: int
    relevance_score: int = Field(ge=1, le=10)
    matched_keywords: List[str] = Field(default_factory=list)


class PackageSummary(BaseModel):
    total_fee: int
    total_sessions: int
    estimated_duration: str
    latest_content_ratio: str
    total_recommended: int
    budget_note: Optional[str] = None


class LearningPath(BaseModel):
    foundation: List[int] = Field(default_factory=list)
    intermediate: List[int] = Field(default_factory=list)
    advanced: List[int] = Field(default_factory=list)


class PipelineMetrics(BaseModel):
    stage1_intent_extraction: int = 0
    stage2_hard_filter: int = 0
    stage3_hybrid_scoring: int = 0
    stage4_relevance_validation: int = 0
    stage5_reason_generation: int = 0
    stage6_fact_verification: int = 0
    stage7_final_package: int = 0


class RecommendationResult(BaseModel):
    success: Literal[True] = True
    package_id: int
    package_name: str
    description: str
    selected_contents: List[SelectedContent]
    summary: PackageSummary
    learning_path: LearningPath
    pipeline_metrics: PipelineMetrics
    degraded: bool = False


class CandidatePreview(BaseModel):
    id: int
    title: str
    major_category: str = ""
    middle_category: str = ""


class RecommendationError(BaseModel):
    success: Literal[False] = False
    requires_manual_review: bool = False
    message: str
    suggestion: Optional[str] = None
    alternatives: List[str] = Field(default_factory=list)
    candidates: List[CandidatePreview] = Field(default_factory=list)
    pipeline_metrics: Optional[PipelineMetrics] = None


def preview(item: CatalogItem) -> CandidatePreview:
    return CandidatePreview(
        id=item.id,
        title=item.title,
        major_category=item.major_category,
        middle_category=item.middle_category,
    )
