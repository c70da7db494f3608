from __future__ import annotations

"""
Stage 7: package assembly and persistence.

Verified recommendations become ordered package items.  Each item is
placed on a three-step learning path by its difficulty label, and the
package is summarised by total fee, total sessions and the share of
recently developed content.  The fully built record is handed to a
:class:`PackageSink` exactly once; the sink owns atomicity.
"""

import datetime as _dt
import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Sequence

from loguru import logger

from .config import ADVANCED_LEVELS, DEFAULT_DURATION, FOUNDATION_LEVELS, PACKAGES_PATH
from .models import (
    CatalogItem,
    LearningPath,
    PackageItemRecord,
    PackageRecord,
    PackageSummary,
    PipelineMetrics,
    RecommendationResult,
    RequirementProfile,
    SelectedContent,
)
from .normalize import parse_year
from .rerank import RelevanceJudgment
from .verify import VerificationOutcome


class PackageSink(Protocol):
    def create_package(self, record: PackageRecord) -> int:
        ...


class InMemoryPackageSink:
    """Keeps created packages in a dict keyed by sequential id."""

    def __init__(self, start_id: int = 1):
        self.packages: Dict[int, PackageRecord] = {}
        self._next_id = start_id
        self._lock = threading.Lock()

    def create_package(self, record: PackageRecord) -> int:
        with self._lock:
            package_id = self._next_id
            self._next_id += 1
            self.packages[package_id] = record
        return package_id


class JsonFilePackageSink:
    """
    Packages persisted as a JSON list in one file.

    Each create rewrites the whole file through a temporary file in the
    same directory followed by an atomic replace, so readers never see
    a half-written package.
    """

    def __init__(self, path: Path = PACKAGES_PATH):
        self.path = Path(path)
        self._lock = threading.Lock()

    def load(self) -> List[dict]:
        if not self.path.exists():
            return []
        with open(self.path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, list):
            raise ValueError(f"{self.path} does not hold a JSON list")
        return data

    def create_package(self, record: PackageRecord) -> int:
        with self._lock:
            packages = self.load()
            package_id = max((int(p.get("id", 0)) for p in packages), default=0) + 1
            packages.append({"id": package_id, **record.model_dump()})
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".packages-", suffix=".json")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(packages, f, ensure_ascii=False, indent=2)
                os.replace(tmp, self.path)
            except Exception:
                Path(tmp).unlink(missing_ok=True)
                raise
        logger.info("Saved package #{} to {}", package_id, self.path)
        return package_id


def classify_level(item: CatalogItem) -> str:
    """``foundation``, ``intermediate`` or ``advanced`` from the difficulty label."""
    level = item.difficulty().lower()
    if any(v in level for v in FOUNDATION_LEVELS):
        return "foundation"
    if any(v in level for v in ADVANCED_LEVELS):
        return "advanced"
    return "intermediate"


def latest_ratio(items: Sequence[CatalogItem], current_year: int) -> int:
    if not items:
        return 0
    recent = 0
    for item in items:
        year = parse_year(item.development_year)
        if year is not None and year >= current_year - 1:
            recent += 1
    return int(round(recent / len(items) * 100))


def budget_note(total_fee: int, budget: Optional[int]) -> Optional[str]:
    if not budget:
        return None
    if total_fee <= budget:
        return f"총 교육비 {total_fee:,}원으로 1인당 예산 {budget:,}원 이내입니다."
    return f"총 교육비 {total_fee:,}원이 1인당 예산 {budget:,}원을 {total_fee - budget:,}원 초과합니다."


def package_name(profile: RequirementProfile) -> str:
    goal = (profile.learning_goal or "")[:20] or "역량개발"
    return f"{profile.company or '기업'} {profile.target_group or '직원'} {goal} 패키지"


def package_description(profile: RequirementProfile, count: int) -> str:
    return (
        f"{profile.learning_goal or '역량개발'}을 위한 맞춤형 교육 패키지입니다. "
        f"총 {count}개의 검증된 콘텐츠로 구성되었으며, 기초부터 심화까지 체계적인 학습 경로를 제공합니다."
    )


def assemble_package(
    outcomes: Sequence[VerificationOutcome],
    judgments: Sequence[RelevanceJudgment],
    profile: RequirementProfile,
    metrics: PipelineMetrics,
    sink: PackageSink,
    current_year: Optional[int] = None,
) -> RecommendationResult:
    if current_year is None:
        current_year = _dt.date.today().year

    verified = [o for o in outcomes if o.verified]
    degraded = False
    if not verified and outcomes:
        logger.warning("No reason passed fact verification; using all {} unverified reasons", len(outcomes))
        verified = list(outcomes)
        degraded = True

    by_id = {j.item_id: j for j in judgments}
    selected: List[SelectedContent] = []
    included: List[CatalogItem] = []
    path = LearningPath()
    for outcome in verified:
        judgment = by_id.get(outcome.item_id)
        if judgment is None:
            continue
        item = judgment.scored.item
        selected.append(
            SelectedContent(
                content_id=item.id,
                order=len(selected) + 1,
                reason=outcome.reason,
                score=judgment.scored.percent(),
                relevance_score=judgment.relevance_score,
                matched_keywords=list(judgment.scored.matched_keywords),
            )
        )
        included.append(item)
        getattr(path, classify_level(item)).append(item.id)

    total_fee = sum(it.fee or 0 for it in included)
    summary = PackageSummary(
        total_fee=total_fee,
        total_sessions=sum(it.sessions or 0 for it in included),
        estimated_duration=profile.duration or DEFAULT_DURATION,
        latest_content_ratio=(
            f"{latest_ratio(included, current_year)}%가 {current_year - 1}-{current_year}년 개발"
        ),
        total_recommended=len(selected),
        budget_note=budget_note(total_fee, profile.budget),
    )
    metrics.stage7_final_package = len(selected)

    name = package_name(profile)
    description = package_description(profile, len(selected))
    record = PackageRecord(
        name=name,
        description=description,
        target_company=profile.company or "",
        target_group=profile.target_group or "",
        requirements=profile.model_dump_json(),
        status="active",
        items=[
            PackageItemRecord(content_id=s.content_id, order=s.order, reason=s.reason, score=s.score)
            for s in selected
        ],
    )
    package_id = sink.create_package(record)
    logger.info("Package #{} assembled with {} contents", package_id, len(selected))

    return RecommendationResult(
        package_id=package_id,
        package_name=name,
        description=description,
        selected_contents=selected,
        summary=summary,
        learning_path=path,
        pipeline_metrics=metrics,
        degraded=degraded,
    )
