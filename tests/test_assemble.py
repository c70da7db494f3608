"""
Tests for package assembly and the package sinks.
"""

import json

import pytest

from vmsrp.assemble import (
    InMemoryPackageSink,
    JsonFilePackageSink,
    assemble_package,
    budget_note,
    classify_level,
    package_name,
)
from vmsrp.models import PackageRecord, PipelineMetrics, RequirementProfile
from vmsrp.rerank import RelevanceJudgment
from vmsrp.scoring import ScoredItem
from vmsrp.verify import VerificationOutcome

from tests.conftest import CURRENT_YEAR, make_item


def judged(item, total=0.8, relevance=8, matched=("파이썬",)):
    s = ScoredItem(item, 1.0, 1.0, 1.0, 1.0, total, list(matched))
    return RelevanceJudgment(scored=s, relevance_score=relevance, reason="")


def outcome(item_id, verified=True):
    return VerificationOutcome(item_id, f"이유 {item_id}", verified, [] if verified else ["x"])


class RecordingSink(InMemoryPackageSink):
    def __init__(self):
        super().__init__(start_id=41)
        self.calls = 0

    def create_package(self, record):
        self.calls += 1
        return super().create_package(record)


@pytest.fixture
def judgments():
    return [
        judged(make_item(10, "입문 과정", level0="입문", fee=100000, sessions=5)),
        judged(make_item(11, "심화 과정", level0=None, level1="고급", fee=200000, sessions=8,
                         development_year=str(CURRENT_YEAR - 1)), total=0.7),
        judged(make_item(12, "일반 과정", level0="중급", fee=50000, sessions=2,
                         development_year="2015")),
        judged(make_item(13, "미분류 과정", level0=None, fee=0, sessions=1, development_year=None)),
    ]


class TestClassifyLevel:

    @pytest.mark.parametrize(
        "level0,level1,bucket",
        [
            ("기초", None, "foundation"),
            ("초급 과정", None, "foundation"),
            ("전문가", None, "advanced"),
            (None, "심화", "advanced"),
            ("중급", "고급", "intermediate"),
            (None, None, "intermediate"),
        ],
    )
    def test_buckets(self, level0, level1, bucket):
        assert classify_level(make_item(1, "x", level0=level0, level1=level1)) == bucket


class TestAssemblePackage:

    def test_orders_buckets_and_totals(self, judgments, profile):
        sink = RecordingSink()
        outcomes = [outcome(10), outcome(11), outcome(12, verified=False), outcome(13)]
        result = assemble_package(outcomes, judgments, profile, PipelineMetrics(), sink, CURRENT_YEAR)

        assert result.package_id == 41
        assert sink.calls == 1
        assert [c.content_id for c in result.selected_contents] == [10, 11, 13]
        assert [c.order for c in result.selected_contents] == [1, 2, 3]
        assert result.selected_contents[0].score == 80
        assert result.selected_contents[1].score == 70
        assert result.selected_contents[0].matched_keywords == ["파이썬"]
        assert result.learning_path.foundation == [10]
        assert result.learning_path.advanced == [11]
        assert result.learning_path.intermediate == [13]
        assert result.summary.total_fee == 300000
        assert result.summary.total_sessions == 14
        assert result.summary.estimated_duration == "3개월"
        assert result.summary.latest_content_ratio == f"67%가 {CURRENT_YEAR - 1}-{CURRENT_YEAR}년 개발"
        assert result.summary.total_recommended == 3
        assert result.pipeline_metrics.stage7_final_package == 3
        assert not result.degraded

    def test_record_handed_to_sink(self, judgments, profile):
        sink = InMemoryPackageSink()
        result = assemble_package([outcome(10)], judgments, profile, PipelineMetrics(), sink, CURRENT_YEAR)
        record = sink.packages[result.package_id]
        assert record.name == "가나전자 개발자 파이썬 데이터 분석 입문 패키지"
        assert record.target_company == "가나전자"
        assert record.status == "active"
        assert [(i.content_id, i.order, i.score) for i in record.items] == [(10, 1, 80)]
        assert json.loads(record.requirements)["learning_goal"] == "파이썬 데이터 분석 입문"

    def test_all_unverified_falls_back_to_everything(self, judgments, profile):
        outcomes = [outcome(10, False), outcome(11, False)]
        result = assemble_package(outcomes, judgments, profile, PipelineMetrics(), InMemoryPackageSink(), CURRENT_YEAR)
        assert result.degraded
        assert [c.content_id for c in result.selected_contents] == [10, 11]

    def test_outcomes_without_judgment_are_skipped(self, judgments, profile):
        result = assemble_package(
            [outcome(99), outcome(10)], judgments, profile, PipelineMetrics(), InMemoryPackageSink(), CURRENT_YEAR
        )
        assert [(c.content_id, c.order) for c in result.selected_contents] == [(10, 1)]

    def test_default_duration(self, judgments):
        result = assemble_package(
            [outcome(10)], judgments, RequirementProfile(), PipelineMetrics(), InMemoryPackageSink(), CURRENT_YEAR
        )
        assert result.summary.estimated_duration == "2개월"
        assert result.summary.budget_note is None
        assert result.package_name == "기업 직원 역량개발 패키지"


class TestNamingAndBudget:

    def test_goal_is_truncated_to_twenty_chars(self):
        profile = RequirementProfile(company="A사", target_group="영업팀", learning_goal="가" * 30)
        assert package_name(profile) == f"A사 영업팀 {'가' * 20} 패키지"

    def test_budget_within(self):
        assert budget_note(300000, 500000) == "총 교육비 300,000원으로 1인당 예산 500,000원 이내입니다."

    def test_budget_exceeded(self):
        assert "200,000원 초과" in budget_note(700000, 500000)

    def test_no_budget(self):
        assert budget_note(100, None) is None


class TestJsonFilePackageSink:

    def test_assigns_sequential_ids_and_persists(self, tmp_path):
        path = tmp_path / "out" / "packages.json"
        sink = JsonFilePackageSink(path)
        record = PackageRecord(name="패키지", description="설명", requirements="{}")
        assert sink.create_package(record) == 1
        assert sink.create_package(record) == 2
        data = json.loads(path.read_text(encoding="utf-8"))
        assert [p["id"] for p in data] == [1, 2]
        assert data[0]["name"] == "패키지"
        assert list(path.parent.iterdir()) == [path]

    def test_rejects_non_list_file(self, tmp_path):
        path = tmp_path / "packages.json"
        path.write_text("{}", encoding="utf-8")
        with pytest.raises(ValueError):
            JsonFilePackageSink(path).create_package(
                PackageRecord(name="p", description="d", requirements="{}")
            )
