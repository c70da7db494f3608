from __future__ import annotations

"""
Catalog access for the recommender.

The pipeline only ever reads the catalog through the small
:class:`CatalogStore` protocol: an OR-of-substrings search over named
text fields and a "most recent N" listing, both ordered by development
year descending.  :class:`DataFrameCatalogStore` implements it over a
pandas DataFrame loaded from a Parquet snapshot or a raw spreadsheet
export.  Raw exports use Korean or English headers, so columns are
mapped onto the canonical schema first.
"""

from pathlib import Path
from typing import Dict, Iterable, List, Optional, Protocol, Sequence

import numpy as np
import pandas as pd
from loguru import logger

from .config import CATALOG_SNAPSHOT_PATH
from .models import CatalogItem
from .normalize import basic_clean

TEXT_SEARCH_FIELDS = (
    "title",
    "intro",
    "objective",
    "major_category",
    "middle_category",
    "minor_category",
)


class CatalogStore(Protocol):
    def search(
        self, keywords: Sequence[str], fields: Sequence[str], limit: int
    ) -> List[CatalogItem]:
        ...

    def recent(self, limit: int) -> List[CatalogItem]:
        ...


# ---------------------------
# Column detection / standardisation
# ---------------------------

COLUMN_CANDIDATES: Dict[str, List[str]] = {
    "id": ["id", "ID", "content_id", "contentId", "콘텐츠ID", "번호"],
    "title": ["title", "courseName", "course_name", "과정명", "콘텐츠명"],
    "major_category": ["major_category", "majorCategory", "대분류"],
    "middle_category": ["middle_category", "middleCategory", "중분류"],
    "minor_category": ["minor_category", "minorCategory", "소분류"],
    "level0": ["level0", "레벨0", "난이도"],
    "level1": ["level1", "레벨1"],
    "level2": ["level2", "레벨2"],
    "level3": ["level3", "레벨3"],
    "intro": ["intro", "courseIntro", "course_intro", "과정소개"],
    "objective": ["objective", "learningObjective", "learning_objective", "학습목표"],
    "target_audience": ["target_audience", "targetAudience", "학습대상"],
    "curriculum": ["curriculum", "학습내용", "커리큘럼"],
    "detail": ["detail", "detailContent", "세부내용"],
    "fee": ["fee", "educationFee", "education_fee", "교육비"],
    "sessions": ["sessions", "차시"],
    "development_year": ["development_year", "developmentYear", "개발연도", "개발년도"],
}

_TEXT_COLUMNS = (
    "title", "major_category", "middle_category", "minor_category",
    "level0", "level1", "level2", "level3",
    "intro", "objective", "target_audience", "detail", "development_year",
)


def _standardise_columns(df: pd.DataFrame) -> pd.DataFrame:
    """Rename raw headers to the canonical schema, first match wins."""
    rename: Dict[str, str] = {}
    present = set(df.columns)
    for canonical, options in COLUMN_CANDIDATES.items():
        for opt in options:
            if opt in present and opt not in rename:
                rename[opt] = canonical
                break
    return df.rename(columns=rename)


def _split_curriculum(raw) -> List[str]:
    if isinstance(raw, (list, tuple, np.ndarray)):
        return [basic_clean(x) for x in list(raw) if basic_clean(x)]
    if _is_missing(raw):
        return []
    text = str(raw)
    parts = text.splitlines() if "\n" in text else text.split(",")
    return [basic_clean(p) for p in parts if basic_clean(p)]


def _is_missing(value) -> bool:
    if value is None or value is pd.NA:
        return True
    return isinstance(value, float) and np.isnan(value)


def _clean_optional(value) -> Optional[str]:
    if _is_missing(value):
        return None
    cleaned = basic_clean(value)
    return cleaned or None


def normalise_catalog_frame(df: pd.DataFrame) -> pd.DataFrame:
    """
    Produce a DataFrame with exactly the canonical columns.

    Missing ids are assigned sequentially; numeric fields are coerced to
    non-negative ints; text fields are cleaned; the curriculum becomes a
    list of strings.
    """
    df = _standardise_columns(df).copy()
    if "id" not in df.columns:
        logger.warning("Catalog has no id column; assigning sequential ids")
        df["id"] = list(range(1, len(df) + 1))
    if "title" not in df.columns:
        raise ValueError(f"Catalog is missing a title column. Found: {list(df.columns)}")

    for col in _TEXT_COLUMNS:
        if col not in df.columns:
            df[col] = None
        df[col] = df[col].map(_clean_optional)
    for col in ("major_category", "middle_category", "minor_category", "title"):
        df[col] = df[col].fillna("")

    for col in ("fee", "sessions"):
        if col not in df.columns:
            df[col] = 0
        df[col] = pd.to_numeric(df[col], errors="coerce").fillna(0).clip(lower=0).astype(int)

    if "curriculum" not in df.columns:
        df["curriculum"] = None
    df["curriculum"] = df["curriculum"].map(_split_curriculum)

    df["id"] = pd.to_numeric(df["id"], errors="coerce")
    before = len(df)
    df = df.dropna(subset=["id"])
    if len(df) < before:
        logger.warning("Dropped {} catalog rows without a numeric id", before - len(df))
    df["id"] = df["id"].astype(int)
    df = df.drop_duplicates(subset=["id"], keep="first")

    cols = ["id"] + [c for c in COLUMN_CANDIDATES if c != "id"]
    return df[cols].reset_index(drop=True)


def load_catalog_frame(path: Path = CATALOG_SNAPSHOT_PATH) -> pd.DataFrame:
    """Load a Parquet, Excel or CSV catalog export and normalise it."""
    if not path.exists():
        raise FileNotFoundError(f"Catalog not found at {path}")
    ext = path.suffix.lower()
    if ext == ".parquet":
        df = pd.read_parquet(path)
    elif ext in {".xlsx", ".xls"}:
        df = pd.read_excel(path)
    else:
        df = pd.read_csv(path)
    df = normalise_catalog_frame(df)
    logger.info("Loaded catalog with {} items from {}", len(df), path)
    return df


def row_to_item(row: pd.Series) -> CatalogItem:
    data = {k: row.get(k) for k in COLUMN_CANDIDATES}
    data = {k: (None if k != "curriculum" and _is_missing(v) else v) for k, v in data.items()}
    data["id"] = int(row["id"])
    data["fee"] = int(row.get("fee", 0) or 0)
    data["sessions"] = int(row.get("sessions", 0) or 0)
    return CatalogItem(**data)


class DataFrameCatalogStore:
    """
    In-process catalog store over a normalised DataFrame.

    Matching is case-insensitive substring containment.  Results are
    ordered by development year descending; rows whose year cannot be
    parsed sort last, and ties keep the id order so output is stable.
    """

    def __init__(self, df: pd.DataFrame):
        self._df = df.reset_index(drop=True)
        years = pd.to_numeric(
            self._df["development_year"].astype(str).str.extract(r"^\s*(\d{1,4})")[0],
            errors="coerce",
        )
        self._order = (
            self._df.assign(_year=years)
            .sort_values(by=["_year", "id"], ascending=[False, True], na_position="last")
            .index
        )
        self._lowered: Dict[str, pd.Series] = {
            f: self._df[f].fillna("").astype(str).str.lower() for f in TEXT_SEARCH_FIELDS
        }

    @classmethod
    def from_items(cls, items: Iterable[CatalogItem]) -> "DataFrameCatalogStore":
        records = [it.model_dump() for it in items]
        df = pd.DataFrame.from_records(records, columns=list(CatalogItem.model_fields))
        return cls(df)

    def __len__(self) -> int:
        return len(self._df)

    def _take(self, mask: Optional[pd.Series], limit: int) -> List[CatalogItem]:
        order = self._order if mask is None else [i for i in self._order if mask.iat[i]]
        return [row_to_item(self._df.loc[i]) for i in list(order)[:limit]]

    def search(
        self, keywords: Sequence[str], fields: Sequence[str] = TEXT_SEARCH_FIELDS, limit: int = 300
    ) -> List[CatalogItem]:
        needles = [k.lower() for k in keywords if k and k.strip()]
        if not needles:
            return []
        mask = pd.Series(False, index=self._df.index)
        for field in fields:
            col = self._lowered.get(field)
            if col is None:
                col = self._df[field].fillna("").astype(str).str.lower()
            for needle in needles:
                mask |= col.str.contains(needle, regex=False)
        return self._take(mask, limit)

    def recent(self, limit: int = 300) -> List[CatalogItem]:
        return self._take(None, limit)
