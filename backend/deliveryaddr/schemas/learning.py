import json
from pydantic import BaseModel, Field, field_validator
from typing import Optional, List
from datetime import datetime


class LearningCreate(BaseModel):
    original_detail_address: str
    corrected_detail_address: str
    building_type: str = "general"
    error_pattern: Optional[str] = None
    problem_description: Optional[str] = None
    pattern_regex: Optional[str] = None
    solution_description: Optional[str] = None
    conversion_template: Optional[str] = None
    # AI 패턴 분석 (AI 사용 가능할 때만 실행, 실패해도 등록은 진행)
    auto_analyze: bool = True


class LearningUpdate(BaseModel):
    original_detail_address: Optional[str] = None
    corrected_detail_address: Optional[str] = None
    building_type: Optional[str] = None
    error_pattern: Optional[str] = None
    problem_description: Optional[str] = None
    pattern_regex: Optional[str] = None
    solution_description: Optional[str] = None
    conversion_template: Optional[str] = None
    confidence_score: Optional[float] = None


class LearningResponse(BaseModel):
    id: int
    original_detail_address: str
    corrected_detail_address: str
    building_type: str
    correction_type: Optional[str] = None
    confidence_score: float
    occurrence_count: int
    success_count: int
    user_confirmed: bool
    error_pattern: Optional[str] = None
    problem_description: Optional[str] = None
    pattern_regex: Optional[str] = None
    solution_description: Optional[str] = None
    conversion_template: Optional[str] = None
    similar_patterns: List[str] = []
    extracted_memo: Optional[str] = None
    analyzed_at: Optional[datetime] = None
    ai_model: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    last_used_at: Optional[datetime] = None

    @field_validator("similar_patterns", mode="before")
    @classmethod
    def _load_json_list(cls, value):
        # DB에는 JSON 문자열로 저장
        if not value:
            return []
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except ValueError:
                return []
        return [str(v) for v in value] if isinstance(value, list) else []

    class Config:
        from_attributes = True


class LearningPage(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int
    data: List[LearningResponse] = []


class LearningFeedback(BaseModel):
    original_detail_address: str


class PatternAnalysis(BaseModel):
    """
    AI analysis of one faulty detail address (오류 주소 패턴 분석).
    Field aliases follow the camelCase keys the model is asked to return.
    """
    original_address: str = Field("", alias="originalAddress")
    corrected_address: str = Field("", alias="correctedAddress")
    error_pattern: str = Field("INVALID_FORMAT", alias="errorPattern")
    problem_description: Optional[str] = Field(None, alias="problemDescription")
    pattern_regex: Optional[str] = Field(None, alias="patternRegex")
    conversion_template: Optional[str] = Field(None, alias="conversionTemplate")
    solution: Optional[str] = None
    building_type: str = Field("general", alias="buildingType")
    confidence: float = 0.8
    similar_patterns: List[str] = Field(default_factory=list, alias="similarPatterns")
    extracted_memo: Optional[str] = Field(None, alias="extractedMemo")
    # 분석에 사용한 모델명 (LLMService가 채움)
    ai_model: Optional[str] = None

    @field_validator("similar_patterns", mode="before")
    @classmethod
    def _strings_only(cls, value):
        if not isinstance(value, list):
            return []
        return [str(v) for v in value if v]

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, value):
        try:
            return min(max(float(value), 0.0), 1.0)
        except (TypeError, ValueError):
            return 0.8

    class Config:
        populate_by_name = True
        extra = "ignore"


class PatternAnalyzeRequest(BaseModel):
    original_detail_address: str
    building_type: str = "general"


class PatternTestRequest(BaseModel):
    test_address: str
    building_type: str = "general"


class PatternTestResult(BaseModel):
    matched: bool
    original: str
    method: Optional[str] = None  # pattern_regex / learned_similarity
    corrected: Optional[str] = None
    pattern: Optional[str] = None
    confidence: Optional[float] = None
    occurrence_count: Optional[int] = None
    message: Optional[str] = None


class LearningStats(BaseModel):
    total: int
    user_confirmed: int
    ai_analyzed: int
    with_pattern: int
    ai_enabled: bool
