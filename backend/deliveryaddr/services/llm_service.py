import json
import logging
import re
from typing import Optional

from openai import OpenAI
from pydantic import ValidationError

from deliveryaddr.core.config import settings
from deliveryaddr.schemas.address import AIEnhancementResult
from deliveryaddr.schemas.learning import PatternAnalysis
from deliveryaddr.utils.building import BuildingClass

logger = logging.getLogger(__name__)

BUILDING_TYPE_KO = {
    BuildingClass.STRICT_APARTMENT: "아파트",
    BuildingClass.RELAXED_APARTMENT: "빌라",
    BuildingClass.GENERAL: "일반 건물",
}

_FENCED_JSON = re.compile(r"```json\s*([\s\S]*?)\s*```")
_BARE_JSON = re.compile(r"\{[\s\S]*\}")


class LLMServiceError(Exception):
    """The LLM endpoint could not be reached or rejected the request."""


def build_prompt(detail: str, building_class: BuildingClass, building_name: Optional[str]) -> str:
    building_type_ko = BUILDING_TYPE_KO[building_class]
    lines = [
        "당신은 한국 주소 정규화 전문가입니다.",
        "",
        "**입력 정보:**",
        f'- 원본 상세주소: "{detail}"',
        f"- 건물 유형: {building_type_ko}",
    ]
    if building_name:
        lines.append(f"- 건물명: {building_name}")
    lines += [
        "",
        "**작업 요청:**",
        "1. 상세주소를 표준 형식으로 정규화하세요.",
        "2. 다음 패턴을 적용하세요:",
        '   - "101 1001" → "101동 1001호"',
        '   - "A-302" → "A동 302호"',
        '   - "지하 1층" → "지하1층"',
        '   - "101동 1001호 (부재시 문앞)" → "101동 1001호" (메모 제거)',
    ]
    if building_class == BuildingClass.STRICT_APARTMENT:
        lines.append('3. 아파트는 반드시 "동+호" 형식이어야 합니다.')
    lines += [
        "",
        "**응답 형식 (JSON만 출력):**",
        '{"normalized": "정규화된 주소", "confidence": 0.95, "reasoning": "판단 근거", "hasError": false}',
        "",
        "confidence는 0.0~1.0 사이 값입니다. 불필요한 설명을 추가하지 마세요.",
    ]
    return "\n".join(lines)


def parse_ai_response(text: str) -> AIEnhancementResult:
    fenced = _FENCED_JSON.search(text)
    bare = _BARE_JSON.search(text)
    if fenced:
        json_text = fenced.group(1)
    elif bare:
        json_text = bare.group(0)
    else:
        json_text = text
    try:
        parsed = json.loads(json_text)
        return AIEnhancementResult(
            normalized=parsed.get("normalized") or "",
            confidence=float(parsed.get("confidence") or 0.7),
            reasoning=parsed.get("reasoning") or "AI 응답 파싱 완료",
            has_error=bool(parsed.get("hasError", False)),
            suggested_correction=parsed.get("suggestedCorrection"),
        )
    except (ValueError, TypeError, AttributeError):
        logger.warning("[LLM] Could not parse response: %r", text)
        return AIEnhancementResult(normalized="", confidence=0.3, reasoning="AI 응답 파싱 실패", has_error=True)


ERROR_PATTERN_CODES = {
    "SPACE_SEPARATED": '공백으로만 구분 (예: "101 1001")',
    "HYPHEN_SEPARATED": '하이픈 구분 (예: "101-1001", "A-302")',
    "MEMO_MIXED": '배송 메모 혼입 (예: "101동 1001호 부재시 문앞")',
    "MISSING_DONG": '동 표기 누락 (예: "1001호")',
    "MISSING_HO": '호 표기 누락 (예: "101동 1001")',
    "FLOOR_FORMAT_ERROR": '층 표기 오류 (예: "B1", "지하1")',
    "ALPHABET_UNIT": '영문 동 표기 (예: "A-302")',
    "ABBREVIATED": '축약 표기 (예: "101-1001")',
    "INVALID_FORMAT": "기타 형식 오류",
}


def build_pattern_prompt(detail: str, building_type: str = "general") -> str:
    """Prompt asking the model to explain a faulty detail address and emit a reusable regex."""
    subject = f"[{building_type}] {detail}" if building_type != "general" else detail
    codes = "\n".join(f"- {code}: {desc}" for code, desc in ERROR_PATTERN_CODES.items())
    return f"""당신은 한국 배송 주소의 오류 패턴을 분석하고 학습하는 전문가입니다.

**분석할 오류 주소:**
"{subject}"

**분석 목표:**
1. 이 상세주소가 배송 시스템에서 오류로 처리되는 이유 분석
2. 표준 형식으로 변환 (예: "101동 1001호")
3. 같은 유형의 오류를 탐지할 정규식과 변환 템플릿 생성
4. 유사한 오류 예시 5개 이상 생성

**응답 형식 (JSON만):**
```json
{{
  "originalAddress": "입력된 원본 주소",
  "correctedAddress": "표준화된 주소",
  "errorPattern": "ERROR_PATTERN_CODE",
  "problemDescription": "오류인 이유 (한글)",
  "patternRegex": "이 패턴을 탐지할 정규식",
  "conversionTemplate": "캡처 그룹을 사용한 변환 템플릿 (예: $1동 $2호)",
  "solution": "수정 방법 설명",
  "buildingType": "apartment|villa|general",
  "confidence": 0.95,
  "similarPatterns": ["유사한 오류 주소 예시"],
  "extractedMemo": "섞여 있던 배송 메모 (없으면 null)"
}}
```

**오류 패턴 코드:**
{codes}

**정규식 규칙:**
1. JSON 안에서 백슬래시는 이중 이스케이프 (\\\\d)
2. 동/호 숫자는 캡처 그룹으로 (\\\\d{{1,4}})
3. conversionTemplate의 $1, $2는 캡처 그룹 순서

중요: JSON만 출력하세요."""


def parse_pattern_analysis(text: str, detail: str) -> Optional[PatternAnalysis]:
    """
    Extract the analysis JSON from a model reply.
    Returns None when no usable JSON object is found. A regex that does not
    compile is dropped so it never reaches the pattern store.
    """
    fenced = _FENCED_JSON.search(text)
    bare = _BARE_JSON.search(text)
    json_text = fenced.group(1) if fenced else bare.group(0) if bare else text
    try:
        parsed = json.loads(json_text)
        analysis = PatternAnalysis.model_validate(
            {k: v for k, v in parsed.items() if v is not None}
        )
    except (ValueError, TypeError, AttributeError, ValidationError):
        logger.warning("[LLM] Could not parse pattern analysis: %r", text)
        return None

    analysis.original_address = detail
    if analysis.pattern_regex:
        try:
            re.compile(analysis.pattern_regex)
        except re.error as e:
            logger.warning("[LLM] Dropping invalid regex %r: %s", analysis.pattern_regex, e)
            analysis.pattern_regex = None
            analysis.conversion_template = None
    return analysis


class LLMService:
    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        enabled: Optional[bool] = None,
    ):
        # Default to local Ollama if not specified
        self.base_url = base_url or settings.LLM_BASE_URL
        self.api_key = api_key or settings.LLM_API_KEY  # Ollama doesn't care about key
        self.model = model or settings.LLM_MODEL  # or qwen2.5-coder, gpt-4o, etc.
        self.enabled = settings.ENABLE_AI_ADDRESS_NORMALIZATION if enabled is None else enabled
        self._client: Optional[OpenAI] = None

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            self._client = OpenAI(base_url=self.base_url, api_key=self.api_key)
        return self._client

    def _complete(self, prompt: str, temperature: float, max_tokens: int) -> str:
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except Exception as e:
            raise LLMServiceError(f"LLM request failed: {e}") from e
        return (response.choices[0].message.content or "").strip()

    def normalize_detail(
        self, detail: str, building_class: BuildingClass, building_name: Optional[str] = None
    ) -> AIEnhancementResult:
        """
        Ask the LLM to normalize a detail address.
        Raises LLMServiceError if the endpoint fails.
        """
        logger.info("[LLM] Requesting detail normalization for: %r", detail)
        content = self._complete(build_prompt(detail, building_class, building_name), temperature=0.3, max_tokens=500)
        result = parse_ai_response(content)
        logger.info("[LLM] %r -> %r (confidence %.2f)", detail, result.normalized, result.confidence)
        return result

    def analyze_pattern(self, detail: str, building_type: str = "general") -> PatternAnalysis:
        """
        Ask the LLM why a detail address is faulty and for a regex + template
        that catches the same mistake. Raises LLMServiceError when the
        endpoint fails or the reply carries no analysis.
        """
        logger.info("[LLM] Requesting pattern analysis for: %r (%s)", detail, building_type)
        content = self._complete(build_pattern_prompt(detail, building_type), temperature=0.2, max_tokens=1000)
        analysis = parse_pattern_analysis(content, detail)
        if analysis is None:
            raise LLMServiceError("LLM reply has no pattern analysis")
        if not analysis.corrected_address:
            analysis.corrected_address = detail
        analysis.ai_model = self.model
        logger.info("[LLM] Pattern analysis for %r: %s (confidence %.2f)", detail, analysis.error_pattern, analysis.confidence)
        return analysis


llm_service = LLMService()
