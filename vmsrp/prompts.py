"""
Prompt templates for the LLM-backed stages.

Catalog content and users are Korean, so prompts are written in
Korean.  Literal JSON braces in the templates are doubled for
``str.format``.
"""

from typing import List, Optional

from .config import DOMAINS, NOT_AVAILABLE, NOT_SPECIFIED
from .models import CatalogItem, RequirementProfile
from .normalize import format_curriculum

INTENT_SYSTEM = "당신은 교육 콘텐츠 검색 전문가입니다. JSON 형식으로만 응답하세요."
RELEVANCE_SYSTEM = "교육 콘텐츠 관련성을 평가합니다. JSON 배열 형식으로만 응답하세요."
REASON_SYSTEM = "콘텐츠 정보를 정확히 인용하여 추천 이유를 작성합니다. 텍스트만 응답하세요."

INTENT_EXTRACTION_PROMPT = """사용자의 학습 요청을 분석하여 검색에 필요한 정보를 추출하세요.

## 사용자 요청
{learning_goal}

## 추가 컨텍스트
- 산업군: {industry}
- 직군: {target_group}
- 직급: {job_level}
- 스킬 레벨: {skill_level}

## 추출 항목
1. primaryKeywords: 반드시 포함되어야 하는 핵심 키워드 (최대 5개)
2. secondaryKeywords: 관련 기술, 도구, 방법론 등 보조 키워드 (최대 10개)
3. domain: 다음 중 하나만 선택 - {domains}
4. targetLevel: 입문, 초급, 중급, 고급 중 하나
5. exclusionKeywords: 요청과 명확히 무관한 분야 키워드 (최대 10개)
6. technicalStack: 사용자가 직접 언급한 기술/도구 (최대 5개)

## 응답 형식
반드시 아래 JSON 형식으로만 응답하세요:
{{
  "primaryKeywords": ["키워드1", "키워드2"],
  "secondaryKeywords": ["키워드1", "키워드2"],
  "domain": "도메인",
  "targetLevel": "레벨",
  "exclusionKeywords": ["키워드1"],
  "technicalStack": ["기술1"]
}}"""

RELEVANCE_VALIDATION_PROMPT = """당신은 교육 콘텐츠 관련성 평가 전문가입니다.

## 사용자 학습 목표
{learning_goal}

## 사용자 컨텍스트
- 직군: {target_group}
- 직급: {job_level}
- 스킬 레벨: {skill_level}
- 산업군: {industry}

## 평가할 콘텐츠 목록
{content_list}

## 점수 기준 (1-10)
- 1-3점: 다른 분야이거나 대상자가 맞지 않음
- 4-5점: 일부 개념만 겹치는 간접적 관련
- 6-7점: 학습 목표와 직접 연결되고 대상자가 적합함
- 8-10점: 목표 달성에 직접 도움이 되며 난이도와 대상자가 잘 맞음

## 주의사항
1. 과정명만 보지 말고 과정소개, 학습목표, 학습대상을 함께 확인하세요
2. "역량 강화" 같은 일반적 표현만으로 높은 점수를 주지 마세요
3. 사용자 스킬 레벨과 맞지 않는 난이도는 감점하세요

## 출력 형식 (JSON 배열)
[
  {{"itemId": 123, "relevanceScore": 8, "reason": "평가 이유"}}
]"""

GROUNDED_REASON_PROMPT = """당신은 교육 콘텐츠 추천 전문가입니다.

## 규칙
1. 추천 이유는 반드시 아래 콘텐츠 정보를 작은따옴표로 그대로 인용해야 합니다
2. 콘텐츠에 없는 기술이나 내용을 지어내지 마세요
3. 인용 예시: 이 과정은 '실제 과정소개 문장'을 다루며...

## 사용자 학습 목표
{learning_goal}

## 사용자 스킬 레벨
{skill_level}

## 추천할 콘텐츠
과정명: {title}
과정소개: {intro}
학습목표: {objective}
학습대상: {target_audience}
학습내용: {curriculum}
카테고리: {category}

## 출력
추천 이유를 2-3문장으로 작성하세요. 위 정보 중 하나 이상을 반드시 인용하세요."""


def _or(value: Optional[str], default: str = NOT_SPECIFIED) -> str:
    return value if value else default


def build_intent_prompt(profile: RequirementProfile) -> str:
    return INTENT_EXTRACTION_PROMPT.format(
        learning_goal=profile.learning_goal or "",
        industry=_or(profile.industry),
        target_group=_or(profile.target_group),
        job_level=_or(profile.job_level),
        skill_level=_or(profile.skill_level),
        domains=", ".join(DOMAINS),
    )


def format_item_for_validation(item: CatalogItem, index: int) -> str:
    return "\n".join([
        f"[{index + 1}] ID: {item.id}",
        f"- 과정명: {item.title}",
        f"- 과정소개: {_or(item.intro, '없음')}",
        f"- 학습목표: {_or(item.objective, '없음')}",
        f"- 학습대상: {_or(item.target_audience, '없음')}",
        f"- 카테고리: {item.major_category} > {item.middle_category}",
    ])


def build_relevance_prompt(profile: RequirementProfile, items: List[CatalogItem]) -> str:
    content_list = "\n\n".join(format_item_for_validation(it, i) for i, it in enumerate(items))
    return RELEVANCE_VALIDATION_PROMPT.format(
        learning_goal=profile.learning_goal or "",
        target_group=_or(profile.target_group),
        job_level=_or(profile.job_level),
        skill_level=_or(profile.skill_level),
        industry=_or(profile.industry),
        content_list=content_list,
    )


def build_reason_prompt(profile: RequirementProfile, item: CatalogItem) -> str:
    return GROUNDED_REASON_PROMPT.format(
        learning_goal=profile.learning_goal or "",
        skill_level=_or(profile.skill_level),
        title=item.title,
        intro=_or(item.intro, NOT_AVAILABLE),
        objective=_or(item.objective, NOT_AVAILABLE),
        target_audience=_or(item.target_audience, NOT_AVAILABLE),
        curriculum=format_curriculum(item.curriculum, limit=5) or "없음",
        category=f"{item.major_category} > {item.middle_category}",
    )
