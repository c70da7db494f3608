"""
Tests for grounded reason generation.
"""

import pytest

from vmsrp.llm import CompletionError
from vmsrp.models import RequirementProfile
from vmsrp.prompts import REASON_SYSTEM
from vmsrp.reasons import extract_citations, generate_reasons
from vmsrp.rerank import RelevanceJudgment
from vmsrp.scoring import ScoredItem

from tests.conftest import make_item
from tests.fakes import FakeCompletionClient, quoting_reason


def judgment(item_id: int, **fields) -> RelevanceJudgment:
    item = make_item(item_id, f"과정 {item_id}", **fields)
    s = ScoredItem(item, 1.0, 1.0, 1.0, 1.0, 1.0)
    return RelevanceJudgment(scored=s, relevance_score=8, reason="")


class TestExtractCitations:

    def test_straight_quotes(self):
        text = "이 과정은 '데이터 분석 기초'와 \"시각화 실습\"을 다룹니다."
        assert extract_citations(text) == ["데이터 분석 기초", "시각화 실습"]

    def test_typographic_quotes(self):
        text = "과정 소개에 따르면 “실무 중심 교육”이며 ‘pandas 활용’을 포함합니다."
        assert extract_citations(text) == ["실무 중심 교육", "pandas 활용"]

    def test_no_quotes(self):
        assert extract_citations("인용이 없는 문장") == []


class TestGenerateReasons:

    @pytest.mark.asyncio
    async def test_reason_quotes_item_and_records_citations(self, profile):
        completion = FakeCompletionClient({REASON_SYSTEM: quoting_reason()})
        [rec] = await generate_reasons([judgment(1, intro="파이썬 데이터 분석 실습")], profile, completion)
        assert rec.item_id == 1
        assert rec.citations == ["파이썬 데이터 분석 실습"]
        assert completion.calls[0][2].temperature == pytest.approx(0.3)

    @pytest.mark.asyncio
    async def test_failure_uses_template_reason(self):
        completion = FakeCompletionClient({REASON_SYSTEM: CompletionError("rate limited")})
        profile = RequirementProfile(learning_goal="파이썬", skill_level="초급")
        [rec] = await generate_reasons([judgment(1)], profile, completion)
        assert rec.reason == "과정 1은(는) 초급 수준에 적합한 교육 콘텐츠입니다."
        assert rec.citations == []

    @pytest.mark.asyncio
    async def test_failure_without_skill_level(self):
        completion = FakeCompletionClient({REASON_SYSTEM: CompletionError("rate limited")})
        [rec] = await generate_reasons([judgment(1)], RequirementProfile(), completion)
        assert "해당 수준" in rec.reason

    @pytest.mark.asyncio
    async def test_keeps_input_order_with_partial_failures(self, profile):
        def script(user):
            if "과정명: 과정 2" in user:
                raise RuntimeError("boom")
            return "좋은 과정입니다."

        completion = FakeCompletionClient({REASON_SYSTEM: script})
        recs = await generate_reasons([judgment(i) for i in (3, 2, 1)], profile, completion)
        assert [r.item_id for r in recs] == [3, 2, 1]
        assert recs[1].reason.startswith("과정 2은(는)")
        assert recs[0].reason == "좋은 과정입니다."

    @pytest.mark.asyncio
    async def test_concurrency_bounded_by_batch_size(self, profile):
        completion = FakeCompletionClient({REASON_SYSTEM: "추천합니다."}, delay=0.01)
        recs = await generate_reasons([judgment(i) for i in range(1, 13)], profile, completion)
        assert len(recs) == 12
        assert completion.max_in_flight == 5
