import logging
from typing import Optional

from deliveryaddr.schemas.address import (
    AddressResolutionResult,
    AddressStatus,
    CandidateMatch,
    Confidence,
)
from deliveryaddr.services.candidate_resolver import CandidateResolver, Registry
from deliveryaddr.services.detail_validation import (
    AINormalizer,
    AIPolicy,
    LearnedStore,
    PatternStore,
    W_BASE_AMBIGUOUS,
    W_DETAIL_MIXED_MEMO,
    W_DETAIL_SUSPECT_UNIT,
    validate_detail,
)
from deliveryaddr.services.juso_service import JusoAPIError, JusoConfigError
from deliveryaddr.utils.building import classify_building, is_apartment
from deliveryaddr.utils.content_filter import (
    find_forbidden_word,
    has_invalid_characters,
    has_mixed_memo,
    has_unrealistic_value,
)
from deliveryaddr.utils.detail import normalize_detail_address
from deliveryaddr.utils.text_normalizer import normalize_address, tokenize

logger = logging.getLogger(__name__)

E_API_KEY_MISSING = "E_API_KEY_MISSING"
E_ADDRESS_EMPTY = "E_ADDRESS_EMPTY"
E_ADDRESS_TOO_SHORT = "E_ADDRESS_TOO_SHORT"
E_API_CALL_FAILED = "E_API_CALL_FAILED"
E_BASE_NOT_FOUND = "E_BASE_NOT_FOUND"
E_DETAIL_INVALID_CHARS = "E_DETAIL_INVALID_CHARS"
E_DETAIL_FORBIDDEN = "E_DETAIL_FORBIDDEN"
OK_STD = "OK_STD"


def _invalid(reason_code: str, message: str) -> AddressResolutionResult:
    logger.info("[Resolver] Status: INVALID - %s", reason_code)
    return AddressResolutionResult(status=AddressStatus.INVALID, reason_code=reason_code, error_message=message)


class AddressResolver:
    """
    End-to-end resolution of one raw address (주소 검증).
    Stateless apart from its collaborators, so one instance can serve
    concurrent calls.
    """

    def __init__(
        self,
        registry: Registry,
        pattern_store: Optional[PatternStore] = None,
        learned_store: Optional[LearnedStore] = None,
        ai: Optional[AINormalizer] = None,
        policy: Optional[AIPolicy] = None,
    ):
        self.registry = registry
        self.candidates = CandidateResolver(registry)
        self.pattern_store = pattern_store
        self.learned_store = learned_store
        self.ai = ai
        self.policy = policy or AIPolicy()

    def resolve(self, raw_address: Optional[str]) -> AddressResolutionResult:
        if not getattr(self.registry, "is_configured", True):
            return _invalid(E_API_KEY_MISSING, "주소 검증 API 키가 설정되지 않았습니다")

        if not raw_address or not raw_address.strip():
            return _invalid(E_ADDRESS_EMPTY, "주소가 비어있습니다")

        normalized = normalize_address(raw_address)
        tokens = tokenize(normalized)
        if len(tokens) < 2:
            return _invalid(E_ADDRESS_TOO_SHORT, "주소가 너무 짧습니다")

        logger.info("[Resolver] Starting validation for: %r", normalized)
        try:
            match = self.candidates.resolve(normalized, tokens)
        except JusoConfigError:
            return _invalid(E_API_KEY_MISSING, "주소 검증 API 키가 설정되지 않았습니다")
        except JusoAPIError as e:
            logger.warning("[Resolver] Registry call failed: %s", e)
            return _invalid(E_API_CALL_FAILED, "API 호출 실패")
        except Exception:
            # 그 밖의 오류도 해당 주소만 Invalid
            logger.exception("[Resolver] Unexpected registry failure for %r", normalized)
            return _invalid(E_API_CALL_FAILED, "API 호출 실패")

        if match is None:
            return _invalid(E_BASE_NOT_FOUND, "건물을 찾을 수 없습니다 (배송 불가)")

        return self._check_detail(match)

    def _check_detail(self, match: CandidateMatch) -> AddressResolutionResult:
        candidate = match.candidate
        standard_address = candidate.road_addr_part1
        detail = match.detail_address
        normalized_detail = normalize_detail_address(detail) if detail else ""
        full_address = f"{standard_address} {detail}" if detail else standard_address

        logger.info("[Resolver] Standard: %r, Detail: %r", standard_address, detail)

        def result(status: AddressStatus, reason_code: str, message: Optional[str] = None, normalized: str = normalized_detail):
            if status == AddressStatus.WARNING:
                logger.info("[Resolver] Status: WARNING - %s", reason_code)
            return AddressResolutionResult(
                status=status,
                standard_address=standard_address,
                detail_address=detail,
                normalized_detail_address=normalized,
                full_address=full_address,
                zip_code=candidate.zip_no,
                building_name=candidate.bd_nm,
                reason_code=reason_code,
                warning_message=message,
            )

        if has_invalid_characters(detail):
            return result(AddressStatus.WARNING, E_DETAIL_INVALID_CHARS, "상세주소에 사용할 수 없는 문자가 포함되어 있습니다")

        forbidden = find_forbidden_word(detail, is_apartment(candidate.bd_kdcd, candidate.bd_nm))
        if forbidden is not None:
            logger.info("[Resolver] Forbidden word: %r", forbidden)
            return result(AddressStatus.WARNING, E_DETAIL_FORBIDDEN, "상세주소에 부적절한 표현이 포함되어 있습니다")

        if has_mixed_memo(detail):
            return result(AddressStatus.WARNING, W_DETAIL_MIXED_MEMO, "상세주소에 배송메모나 전화번호가 섞여있습니다")

        if has_unrealistic_value(detail):
            return result(AddressStatus.WARNING, W_DETAIL_SUSPECT_UNIT, "동/호수 값이 비현실적입니다")

        outcome = validate_detail(
            detail,
            classify_building(candidate.bd_kdcd, candidate.bd_nm),
            candidate.bd_nm,
            pattern_store=self.pattern_store,
            learned_store=self.learned_store,
            ai=self.ai,
            policy=self.policy,
        )
        if not outcome.is_valid:
            return result(AddressStatus.WARNING, outcome.reason_code, outcome.warning_message)

        corrected = outcome.corrected_detail or normalized_detail

        if match.multiple_results and match.confidence == Confidence.LOW:
            return result(
                AddressStatus.WARNING, W_BASE_AMBIGUOUS,
                "여러 건물이 검색되어 자동 선택되었습니다. 주소를 확인해주세요.",
                normalized=corrected,
            )

        logger.info("[Resolver] Status: VALID (%s)", outcome.source.value)
        return result(AddressStatus.VALID, OK_STD, normalized=corrected)


def build_default_resolver() -> AddressResolver:
    """Wire the resolver to the Juso API, the learning tables and the LLM."""
    from deliveryaddr.services.juso_service import juso_service
    from deliveryaddr.services.learning_service import learning_service
    from deliveryaddr.services.llm_service import llm_service

    return AddressResolver(
        registry=juso_service,
        pattern_store=learning_service,
        learned_store=learning_service,
        ai=llm_service,
        policy=AIPolicy.from_settings(),
    )
