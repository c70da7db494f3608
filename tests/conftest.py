"""
Shared fixtures for the recommender tests.
"""

import pytest

from vmsrp.assemble import InMemoryPackageSink
from vmsrp.catalog import DataFrameCatalogStore
from vmsrp.embed_index import InMemoryEmbeddingStore
from vmsrp.models import CatalogItem, RequirementProfile

from tests.fakes import FakeEmbedder

CURRENT_YEAR = 2025


def make_item(item_id: int, title: str, **fields) -> CatalogItem:
    defaults = dict(
        major_category="IT/개발",
        middle_category="데이터",
        minor_category="프로그래밍",
        level0="중급",
        intro=f"{title} 과정입니다.",
        objective=None,
        target_audience="현업 실무자",
        curriculum=[],
        fee=100000,
        sessions=10,
        development_year=str(CURRENT_YEAR),
    )
    defaults.update(fields)
    return CatalogItem(id=item_id, title=title, **defaults)


# ============================================
# Catalog fixtures
# ============================================

@pytest.fixture
def python_items():
    """A small Korean catalog around Python data analysis."""
    return [
        make_item(
            1,
            "파이썬 데이터 분석 입문",
            level0="입문",
            intro="파이썬과 pandas로 데이터를 분석하는 기초 과정",
            objective="데이터 분석 실무 역량 확보",
            curriculum=["파이썬 기초 문법", "pandas 데이터프레임", "시각화"],
        ),
        make_item(
            2,
            "파이썬 데이터 분석 심화",
            level0="심화",
            intro="대용량 데이터 분석을 위한 파이썬 고급 기법",
            objective="데이터 분석 자동화",
            development_year=str(CURRENT_YEAR - 1),
            fee=200000,
            sessions=20,
        ),
        make_item(
            3,
            "파이썬 리더십 워크숍",
            major_category="경영/관리",
            middle_category="리더십",
            minor_category="조직",
            intro="리더십 역량을 키우는 파이썬 사례 연구",
        ),
        make_item(
            4,
            "엑셀 보고서 작성",
            major_category="사무",
            middle_category="오피스",
            minor_category="엑셀",
            intro="보고서 서식 정리",
        ),
    ]


@pytest.fixture
def python_catalog(python_items):
    return DataFrameCatalogStore.from_items(python_items)


@pytest.fixture
def aligned_embeddings(python_items):
    """Every item embedded on the query axis, so cosine similarity is 1."""
    return InMemoryEmbeddingStore({it.id: [1.0, 0.0, 0.0] for it in python_items})


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def sink():
    return InMemoryPackageSink()


@pytest.fixture
def profile():
    return RequirementProfile(
        company="가나전자",
        industry="제조",
        target_group="개발자",
        job_level="사원",
        skill_level="초급",
        learning_goal="파이썬 데이터 분석 입문",
        duration="3개월",
        budget=500000,
    )
