from enum import Enum
from pydantic import BaseModel, Field, field_validator
from typing import Optional, List
from datetime import datetime


class AddressStatus(str, Enum):
    VALID = "valid"
    WARNING = "warning"
    INVALID = "invalid"


class Confidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ValidationSource(str, Enum):
    PATTERN = "pattern"
    LEARNED = "learned"
    RULE = "rule"
    AI = "ai"


class RegistryCandidate(BaseModel):
    """
    One `juso` record from the Road Address API (도로명주소 검색 결과)
    """
    road_addr_part1: str = Field("", alias="roadAddrPart1")
    road_addr_part2: str = Field("", alias="roadAddrPart2")
    jibun_addr: str = Field("", alias="jibunAddr")
    zip_no: str = Field("", alias="zipNo")
    bd_nm: str = Field("", alias="bdNm")
    bd_kdcd: str = Field("", alias="bdKdcd")
    si_nm: str = Field("", alias="siNm")
    sgg_nm: str = Field("", alias="sggNm")
    emd_nm: str = Field("", alias="emdNm")
    rn: str = Field("", alias="rn")
    buld_mnnm: str = Field("", alias="buldMnnm")
    buld_slno: str = Field("", alias="buldSlno")

    @field_validator("*", mode="before")
    @classmethod
    def _none_to_empty(cls, value):
        return "" if value is None else value

    class Config:
        populate_by_name = True
        frozen = True
        extra = "ignore"


class RegistrySearchResult(BaseModel):
    total_count: int = 0
    candidates: List[RegistryCandidate] = []
    error_code: str = "0"
    error_message: Optional[str] = None


class ScoredCandidate(BaseModel):
    candidate: RegistryCandidate
    score: int


class CandidateMatch(BaseModel):
    """
    Registry match chosen by the candidate resolver
    """
    candidate: RegistryCandidate
    confidence: Confidence = Confidence.HIGH
    multiple_results: bool = False
    detail_address: str = ""
    strategy: str = "trim"


class ValidationOutcome(BaseModel):
    is_valid: bool
    reason_code: str = "OK_STD"
    warning_message: Optional[str] = None
    corrected_detail: Optional[str] = None
    source: ValidationSource = ValidationSource.RULE
    confidence: float = 0.95
    rule_confidence: Optional[float] = None
    ai_reasoning: Optional[str] = None
    pattern_name: Optional[str] = None


class AddressResolutionResult(BaseModel):
    """
    Terminal result of one resolution call (주소 검증 결과)
    """
    status: AddressStatus
    standard_address: Optional[str] = None
    detail_address: Optional[str] = None
    normalized_detail_address: Optional[str] = None
    full_address: Optional[str] = None
    zip_code: Optional[str] = None
    building_name: Optional[str] = None
    reason_code: str
    warning_message: Optional[str] = None
    error_message: Optional[str] = None

    class Config:
        frozen = True


# --- Collaborator contracts ---

class PatternMatch(BaseModel):
    pattern_regex: str
    corrected_detail: str
    label: Optional[str] = None
    confidence: float = 1.0


class LearnedCorrection(BaseModel):
    corrected: str
    confidence: float = 1.0
    occurrence_count: int = 0


class AIEnhancementResult(BaseModel):
    normalized: str = ""
    confidence: float = 0.0
    reasoning: str = ""
    has_error: bool = False
    suggested_correction: Optional[str] = None


# --- HTTP payloads ---

class AddressBase(BaseModel):
    raw_text: str


class AddressCreate(AddressBase):
    pass


class AddressResponse(AddressBase):
    id: int
    status: str
    standard_address: Optional[str] = None
    detail_address: Optional[str] = None
    normalized_detail_address: Optional[str] = None
    zip_no: Optional[str] = None
    buld_nm: Optional[str] = None
    reason_code: Optional[str] = None
    warning_message: Optional[str] = None
    error_message: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class AddressValidationItem(BaseModel):
    row_index: int
    address: str
    phone: Optional[str] = None


class ValidateAddressesRequest(BaseModel):
    addresses: List[AddressValidationItem]


class AddressValidationRow(BaseModel):
    row_index: int
    original_address: str
    status: AddressStatus
    standard_address: Optional[str] = None
    detail_address: Optional[str] = None
    normalized_detail_address: Optional[str] = None
    full_address: Optional[str] = None
    zip_code: Optional[str] = None
    building_name: Optional[str] = None
    warning_message: Optional[str] = None
    error_message: Optional[str] = None
    reason_code: Optional[str] = None
    is_island_remote: bool = False
    is_length_exceeded: bool = False
    original_phone: Optional[str] = None
    formatted_phone: Optional[str] = None
    phone_modified: Optional[bool] = None


class ValidateAddressesResponse(BaseModel):
    success: bool = True
    results: List[AddressValidationRow] = []
    valid_count: int = 0
    warning_count: int = 0
    invalid_count: int = 0
    island_remote_count: int = 0
    length_exceeded_count: int = 0
