"""
Tests for the hard filter and the DataFrame catalog store.
"""

import pandas as pd
import pytest

from vmsrp.catalog import DataFrameCatalogStore, TEXT_SEARCH_FIELDS, normalise_catalog_frame
from vmsrp.config import PipelineConfig
from vmsrp.models import SearchIntent
from vmsrp.retrieval import apply_exclusions, hard_filter

from tests.conftest import make_item


class TestCatalogStore:

    def test_search_is_or_across_fields_and_case_insensitive(self, python_catalog):
        found = python_catalog.search(["PANDAS", "엑셀"], TEXT_SEARCH_FIELDS, 10)
        assert {it.id for it in found} == {1, 4}

    def test_search_matches_category_fields(self, python_catalog):
        found = python_catalog.search(["리더십"], TEXT_SEARCH_FIELDS, 10)
        assert [it.id for it in found] == [3]

    def test_results_ordered_by_year_desc_then_id(self):
        store = DataFrameCatalogStore.from_items([
            make_item(5, "데이터 A", development_year="2021"),
            make_item(2, "데이터 B", development_year=None),
            make_item(9, "데이터 C", development_year="2024년"),
            make_item(3, "데이터 D", development_year="2024"),
        ])
        found = store.search(["데이터"], ["title"], 10)
        assert [it.id for it in found] == [3, 9, 5, 2]

    def test_search_respects_limit(self, python_catalog):
        assert len(python_catalog.search(["파이썬"], TEXT_SEARCH_FIELDS, 2)) == 2

    def test_recent_lists_newest_first(self, python_catalog):
        assert [it.id for it in python_catalog.recent(2)] == [1, 3]

    def test_normalise_maps_korean_headers(self):
        raw = pd.DataFrame({
            "번호": [7],
            "과정명": ["<b>파이썬</b> 기초"],
            "대분류": ["IT/개발"],
            "학습내용": ["변수\n반복문\n함수"],
            "교육비": ["150000"],
            "차시": [None],
            "개발연도": ["2023년"],
        })
        df = normalise_catalog_frame(raw)
        item = DataFrameCatalogStore(df).recent(1)[0]
        assert item.id == 7
        assert item.title == "파이썬 기초"
        assert item.major_category == "IT/개발"
        assert item.curriculum == ["변수", "반복문", "함수"]
        assert item.fee == 150000
        assert item.sessions == 0
        assert item.intro is None

    def test_normalise_requires_title(self):
        with pytest.raises(ValueError):
            normalise_catalog_frame(pd.DataFrame({"id": [1]}))


class TestHardFilter:

    def test_applies_exclusions_after_search(self, python_catalog):
        intent = SearchIntent(primary_keywords=["파이썬"], exclusion_keywords=["리더십"])
        found = hard_filter(intent, python_catalog)
        assert {it.id for it in found} == {1, 2}

    def test_uses_secondary_keywords(self, python_catalog):
        intent = SearchIntent(primary_keywords=["없는키워드"], secondary_keywords=["보고서"])
        assert [it.id for it in hard_filter(intent, python_catalog)] == [4]

    def test_no_keywords_returns_most_recent(self, python_catalog):
        config = PipelineConfig(candidate_limit=3)
        found = hard_filter(SearchIntent(), python_catalog, config)
        assert len(found) == 3

    def test_candidate_limit_caps_search(self, python_catalog):
        config = PipelineConfig(candidate_limit=1)
        intent = SearchIntent(primary_keywords=["파이썬"])
        assert len(hard_filter(intent, python_catalog, config)) == 1

    def test_nothing_matches(self, python_catalog):
        intent = SearchIntent(primary_keywords=["쿠버네티스"])
        assert hard_filter(intent, python_catalog) == []

    def test_exclusion_ignores_categories(self):
        item = make_item(1, "파이썬", middle_category="리더십")
        assert apply_exclusions([item], ["리더십"]) == [item]
