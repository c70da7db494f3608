from __future__ import annotations
"""
Configuration for the VMSRP content recommender.

Module-level constants hold paths, model names and the fixed lookup
tables (domain keywords, technology vocabulary, difficulty levels).
Numeric defaults can be overridden through environment variables and
are bundled into :class:`PipelineConfig`, which every stage accepts.
"""

import os
from pathlib import Path
from types import MappingProxyType
from typing import Mapping, Tuple

from pydantic import BaseModel, Field, model_validator

# Paths
PROJECT_ROOT = Path(__file__).resolve().parents[1]
DATA_DIR = PROJECT_ROOT / "data"
CATALOG_SNAPSHOT_PATH = DATA_DIR / "catalog_snapshot.parquet"
PACKAGES_PATH = DATA_DIR / "packages.json"

INDICES_DIR = PROJECT_ROOT / "indices"
EMBEDDINGS_PATH = INDICES_DIR / "item_embeddings.npy"
IDS_MAPPING_PATH = INDICES_DIR / "ids.json"

MODELS_DIR = PROJECT_ROOT / "models"
LOG_DIR = PROJECT_ROOT / "logs"

# Models
ENCODER_MODEL = os.getenv("VMSRP_ENCODER_MODEL", "BAAI/bge-m3")
LLM_MODEL = os.getenv("VMSRP_LLM_MODEL", "gpt-4o")
LLM_TIMEOUT = float(os.getenv("VMSRP_LLM_TIMEOUT", "60"))
LLM_MAX_TOKENS = 2000
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")

HF_ENV_VARS = {
    "HF_HUB_ENABLE_HF_TRANSFER": "1",
    "TRANSFORMERS_CACHE": str(MODELS_DIR),
    "HF_HUB_OFFLINE": os.getenv("HF_HUB_OFFLINE", "0"),
}

# Hybrid scoring
KEYWORD_WEIGHT = 0.40
VECTOR_WEIGHT = 0.25
CATEGORY_WEIGHT = 0.20
RECENCY_WEIGHT = 0.15

HYBRID_SCORE_MIN = float(os.getenv("VMSRP_HYBRID_SCORE_MIN", "0.5"))
RELEVANCE_SCORE_MIN = int(os.getenv("VMSRP_RELEVANCE_SCORE_MIN", "6"))
CITATION_SIMILARITY_MIN = 0.7
FALLBACK_HYBRID_MIN = 0.6
FALLBACK_RELEVANCE_SCORE = 7

MISSING_EMBEDDING_SCORE = 0.3
MISSING_YEAR_SCORE = 0.5
RECENCY_DECAY_PER_YEAR = 0.1
CATEGORY_MATCH_SATURATION = 3

# Candidate pools
CANDIDATE_LIMIT = 300
NEAR_MISS_LIMIT = 10

# Batching
RELEVANCE_BATCH_SIZE = 10
REASON_BATCH_SIZE = 5
EMBED_BATCH_SIZE = 20
EMBED_BATCH_DELAY_SEC = 1.0
EMBED_TEXT_MAX_CHARS = 8000

# Intent limits
MAX_PRIMARY_KEYWORDS = 5
MAX_SECONDARY_KEYWORDS = 10
MAX_EXCLUSION_KEYWORDS = 10
MAX_TECHNICAL_STACK = 5
MIN_FALLBACK_TOKEN_LEN = 2
MIN_CITATION_LEN = 5

DEFAULT_DOMAIN = "IT/개발"
DEFAULT_TARGET_LEVEL = "중급"
DEFAULT_DURATION = "2개월"

# Domain -> category keywords.  Order matters: first match wins.
DOMAIN_CATEGORIES: Mapping[str, Tuple[str, ...]] = MappingProxyType({
    "IT/개발": ("개발", "IT", "프로그래밍", "소프트웨어", "데이터", "인공지능", "AI", "클라우드"),
    "경영/관리": ("경영", "관리", "리더십", "MBA", "전략", "조직"),
    "마케팅": ("마케팅", "광고", "브랜딩", "디지털마케팅", "SNS"),
    "디자인": ("디자인", "UI", "UX", "그래픽", "편집"),
    "금융/회계": ("금융", "회계", "재무", "투자", "보험"),
    "인사/조직": ("인사", "HR", "채용", "평가", "조직문화"),
    "영업/고객": ("영업", "세일즈", "고객", "CS", "서비스"),
})
DOMAINS: Tuple[str, ...] = tuple(DOMAIN_CATEGORIES)

# Technology names scanned for hallucinated mentions
TECH_KEYWORDS: Tuple[str, ...] = (
    "Flutter", "React", "Vue", "Angular", "Python", "Java", "JavaScript", "TypeScript",
    "Node.js", "TensorFlow", "PyTorch", "AWS", "Docker", "Kubernetes", "Spring",
    "Django", "FastAPI", "Next.js", "GraphQL", "REST", "SQL", "NoSQL", "MongoDB",
    "PostgreSQL", "Redis", "Kafka", "RabbitMQ", "Git", "CI/CD", "DevOps",
    "Machine Learning", "Deep Learning", "NLP", "Computer Vision", "LLM", "GPT",
    "Transformer", "CNN", "RNN", "LSTM", "GAN", "Reinforcement Learning",
)

# Difficulty vocabularies for learning path buckets
FOUNDATION_LEVELS: Tuple[str, ...] = ("입문", "기초", "초급")
ADVANCED_LEVELS: Tuple[str, ...] = ("심화", "고급", "전문")

NOT_SPECIFIED = "미지정"
NOT_AVAILABLE = "정보 없음"


class ScoringWeights(BaseModel):
    keyword: float = Field(default=KEYWORD_WEIGHT, ge=0.0, le=1.0)
    vector: float = Field(default=VECTOR_WEIGHT, ge=0.0, le=1.0)
    category: float = Field(default=CATEGORY_WEIGHT, ge=0.0, le=1.0)
    recency: float = Field(default=RECENCY_WEIGHT, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def _check_sum(self) -> "ScoringWeights":
        total = self.keyword + self.vector + self.category + self.recency
        if abs(total - 1.0) > 1e-6:
            raise ValueError(f"Scoring weights must sum to 1.0 (got {total:.4f})")
        return self


class Thresholds(BaseModel):
    hybrid_score_min: float = Field(default=HYBRID_SCORE_MIN, ge=0.0, le=1.0)
    relevance_score_min: int = Field(default=RELEVANCE_SCORE_MIN, ge=1, le=10)
    citation_similarity_min: float = Field(default=CITATION_SIMILARITY_MIN, ge=0.0, le=1.0)
    fallback_hybrid_min: float = Field(default=FALLBACK_HYBRID_MIN, ge=0.0, le=1.0)


class BatchSizes(BaseModel):
    relevance_validation: int = Field(default=RELEVANCE_BATCH_SIZE, ge=1)
    reason_generation: int = Field(default=REASON_BATCH_SIZE, ge=1)


class StageModels(BaseModel):
    intent_extraction: str = LLM_MODEL
    relevance_validation: str = LLM_MODEL
    reason_generation: str = LLM_MODEL


class PipelineConfig(BaseModel):
    """Tunable knobs shared by every pipeline stage."""

    weights: ScoringWeights = Field(default_factory=ScoringWeights)
    thresholds: Thresholds = Field(default_factory=Thresholds)
    batch: BatchSizes = Field(default_factory=BatchSizes)
    models: StageModels = Field(default_factory=StageModels)
    candidate_limit: int = Field(default=CANDIDATE_LIMIT, ge=1)
    near_miss_limit: int = Field(default=NEAR_MISS_LIMIT, ge=0)


DEFAULT_CONFIG = PipelineConfig()


def domain_keywords(domain: str) -> Tuple[str, ...]:
    """Category keywords for ``domain``; empty for unknown domains."""
    return DOMAIN_CATEGORIES.get(domain, ())


def ensure_hf_env() -> None:
    for key, val in HF_ENV_VARS.items():
        os.environ.setdefault(key, val)


def ensure_log_dir() -> Path:
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    return LOG_DIR
