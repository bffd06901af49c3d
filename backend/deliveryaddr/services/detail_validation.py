"""
Detail address validation cascade.

    pattern store → learned corrections → building-type rules → AI fallback

Each stage returns an outcome or None; the first outcome wins. Pattern and
learned lookups that fail are logged and treated as misses. The AI stage is
only consulted when enabled and the rule confidence is below the threshold;
its corrections are written back to the learned store on a best-effort basis.
"""
import logging
from dataclasses import dataclass
from typing import Optional, Protocol

from deliveryaddr.core.config import settings
from deliveryaddr.schemas.address import (
    AIEnhancementResult,
    LearnedCorrection,
    PatternMatch,
    ValidationOutcome,
    ValidationSource,
)
from deliveryaddr.services.learning_service import infer_correction_type, match_and_convert_by_pattern
from deliveryaddr.utils.building import BuildingClass
from deliveryaddr.utils.detail import (
    has_dong,
    has_floor_or_ho,
    has_ho,
    match_dong_ho,
    match_floor_or_unit,
    match_hyphen_pair,
)

logger = logging.getLogger(__name__)

OK_STD = "OK_STD"
W_DETAIL_MISSING_UNIT = "W_DETAIL_MISSING_UNIT"
W_DETAIL_MISSING_HO = "W_DETAIL_MISSING_HO"
W_DETAIL_MIXED_MEMO = "W_DETAIL_MIXED_MEMO"
W_DETAIL_SUSPECT_UNIT = "W_DETAIL_SUSPECT_UNIT"
W_BASE_AMBIGUOUS = "W_BASE_AMBIGUOUS"

VALID_RULE_CONFIDENCE = 0.95
DEFAULT_RULE_CONFIDENCE = 0.75
RULE_CONFIDENCE = {
    W_DETAIL_MISSING_UNIT: 0.6,
    W_DETAIL_MISSING_HO: 0.7,
    W_DETAIL_MIXED_MEMO: 0.5,
    W_DETAIL_SUSPECT_UNIT: 0.6,
    W_BASE_AMBIGUOUS: 0.5,
}

AI_VALID_CONFIDENCE = 0.85

MSG_APT_MISSING_UNIT = "아파트: 상세주소(동/호)가 누락되었습니다"
MSG_MISSING_UNIT = "상세주소(호)가 누락되었습니다"
MSG_APT_MISSING_HO = "아파트: 호수가 누락된 것으로 보입니다 (예: 202호)"
MSG_APT_UNCLEAR = "아파트: 동/호수 정보를 확인해주세요"


class PatternStore(Protocol):
    def find_by_pattern(self, detail: str, building_type: BuildingClass) -> Optional[PatternMatch]: ...


class LearnedStore(Protocol):
    def find(self, detail: str, building_type: BuildingClass) -> Optional[LearnedCorrection]: ...

    def save(self, original: str, corrected: str, building_type: BuildingClass, correction_type: str) -> None: ...


class AINormalizer(Protocol):
    def normalize_detail(
        self, detail: str, building_class: BuildingClass, building_name: Optional[str] = None
    ) -> AIEnhancementResult: ...


@dataclass(frozen=True)
class AIPolicy:
    enabled: bool = False
    threshold: float = 0.9

    @classmethod
    def from_settings(cls) -> "AIPolicy":
        return cls(
            enabled=settings.ENABLE_AI_ADDRESS_NORMALIZATION,
            threshold=settings.AI_CONFIDENCE_THRESHOLD,
        )


def rule_confidence(outcome: ValidationOutcome) -> float:
    if outcome.is_valid:
        return VALID_RULE_CONFIDENCE
    return RULE_CONFIDENCE.get(outcome.reason_code, DEFAULT_RULE_CONFIDENCE)


def _rule_outcome(is_valid: bool, reason_code: str = OK_STD, message: Optional[str] = None) -> ValidationOutcome:
    outcome = ValidationOutcome(is_valid=is_valid, reason_code=reason_code, warning_message=message)
    confidence = rule_confidence(outcome)
    return outcome.model_copy(update={"confidence": confidence, "rule_confidence": confidence})


def validate_with_rules(detail: str, building_class: BuildingClass) -> ValidationOutcome:
    if not detail or not detail.strip():
        if building_class == BuildingClass.STRICT_APARTMENT:
            return _rule_outcome(False, W_DETAIL_MISSING_UNIT, MSG_APT_MISSING_UNIT)
        if building_class == BuildingClass.RELAXED_APARTMENT:
            return _rule_outcome(False, W_DETAIL_MISSING_UNIT, MSG_MISSING_UNIT)
        return _rule_outcome(True)

    if building_class == BuildingClass.STRICT_APARTMENT:
        if match_dong_ho(detail) or match_hyphen_pair(detail):
            return _rule_outcome(True)

        dong = has_dong(detail)
        ho = has_ho(detail)
        # 호만 있는 경우는 소규모 아파트로 간주하여 허용
        if ho:
            return _rule_outcome(True)
        if dong:
            return _rule_outcome(False, W_DETAIL_MISSING_HO, MSG_APT_MISSING_HO)
        return _rule_outcome(False, W_DETAIL_MISSING_UNIT, MSG_APT_UNCLEAR)

    if building_class == BuildingClass.RELAXED_APARTMENT:
        if match_dong_ho(detail) or match_hyphen_pair(detail) or match_floor_or_unit(detail):
            return _rule_outcome(True)
        if has_ho(detail) or has_floor_or_ho(detail):
            return _rule_outcome(True)
        # 호 정보가 없어도 설명이 있으면 OK (예: "합정건축 다음집입니다")
        if len(detail) >= 2:
            return _rule_outcome(True)
        return _rule_outcome(False, W_DETAIL_MISSING_UNIT, MSG_MISSING_UNIT)

    return _rule_outcome(True)


def _from_pattern_store(detail: str, building_class: BuildingClass, store: Optional[PatternStore]) -> Optional[ValidationOutcome]:
    if store is None:
        return None
    try:
        match = store.find_by_pattern(detail, building_class)
        if not match or not match.pattern_regex:
            return None
        converted = match_and_convert_by_pattern(detail, match.pattern_regex, match.corrected_detail)
    except Exception:
        logger.exception("[DetailValidation] Pattern lookup failed for %r", detail)
        return None

    if not converted:
        return None
    logger.info("[DetailValidation] Pattern hit (%s): %r -> %r", match.label, detail, converted)
    return ValidationOutcome(
        is_valid=True,
        reason_code=OK_STD,
        corrected_detail=converted,
        source=ValidationSource.PATTERN,
        confidence=1.0,
        pattern_name=match.label,
    )


def _from_learned_store(detail: str, building_class: BuildingClass, store: Optional[LearnedStore]) -> Optional[ValidationOutcome]:
    if store is None:
        return None
    try:
        learned = store.find(detail, building_class)
    except Exception:
        logger.exception("[DetailValidation] Learned lookup failed for %r", detail)
        return None

    if not learned or not learned.corrected:
        return None
    logger.info("[DetailValidation] Learned hit (%s times): %r -> %r", learned.occurrence_count, detail, learned.corrected)
    return ValidationOutcome(
        is_valid=True,
        reason_code=OK_STD,
        corrected_detail=learned.corrected,
        source=ValidationSource.LEARNED,
        confidence=learned.confidence or 1.0,
    )


def _from_ai(
    detail: str,
    building_class: BuildingClass,
    building_name: Optional[str],
    rule_outcome: ValidationOutcome,
    ai: Optional[AINormalizer],
    learned_store: Optional[LearnedStore],
    policy: AIPolicy,
) -> Optional[ValidationOutcome]:
    rule_conf = rule_outcome.confidence
    if ai is None or not policy.enabled or rule_conf >= policy.threshold:
        return None

    logger.info("[DetailValidation] Calling AI (rule confidence %.2f)", rule_conf)
    try:
        result = ai.normalize_detail(detail, building_class, building_name)
    except Exception as e:
        logger.warning("[DetailValidation] AI call failed, falling back to rules: %s", e)
        return None

    if result.has_error or result.confidence <= rule_conf or not result.normalized:
        return None

    logger.info("[DetailValidation] Applying AI result %r (confidence %.2f)", result.normalized, result.confidence)
    if learned_store is not None:
        try:
            learned_store.save(detail, result.normalized, building_class, infer_correction_type(detail, result.normalized))
        except Exception:
            logger.exception("[DetailValidation] Failed to save AI correction for %r", detail)

    is_valid = result.confidence >= AI_VALID_CONFIDENCE
    return ValidationOutcome(
        is_valid=is_valid,
        reason_code=OK_STD if is_valid else rule_outcome.reason_code,
        warning_message=None if is_valid else rule_outcome.warning_message,
        corrected_detail=result.normalized,
        source=ValidationSource.AI,
        confidence=result.confidence,
        rule_confidence=rule_conf,
        ai_reasoning=result.reasoning,
    )


def validate_detail(
    detail: str,
    building_class: BuildingClass,
    building_name: Optional[str] = None,
    *,
    pattern_store: Optional[PatternStore] = None,
    learned_store: Optional[LearnedStore] = None,
    ai: Optional[AINormalizer] = None,
    policy: AIPolicy = AIPolicy(),
) -> ValidationOutcome:
    outcome = _from_pattern_store(detail, building_class, pattern_store)
    if outcome is not None:
        return outcome

    outcome = _from_learned_store(detail, building_class, learned_store)
    if outcome is not None:
        return outcome

    rule_outcome = validate_with_rules(detail, building_class)

    outcome = _from_ai(detail, building_class, building_name, rule_outcome, ai, learned_store, policy)
    if outcome is not None:
        return outcome

    return rule_outcome
