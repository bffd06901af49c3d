"""
Detail address (동/호/층) helpers.

- extract_detail_address: 원본 토큰에서 표준 도로명주소가 덮지 않는 나머지(상세주소)를 잘라낸다.
- normalize_detail_address: "3-402" → "3동 402호", "B1" → "지하 1층" 처럼 구조를 표준화한다.
- match_* / has_*: 건물 유형별 상세주소 문법 판정에 쓰이는 패턴.
"""
import re

BUILDING_NUMBER = re.compile(r"^\d+(-\d+)?$")
_TRAILING_BUILDING_NUMBER = re.compile(r"(\d+(?:-\d+)?)\s*$")


def _split(text: str) -> list[str]:
    return [t for t in text.split(" ") if t]


def _road_name_token(standard_tokens: list[str]) -> str:
    """표준주소에서 도로명 토큰 (예: '테헤란로', '강남대로123길'). 마지막이 건물번호면 그 앞 토큰."""
    for token in reversed(standard_tokens):
        if not BUILDING_NUMBER.match(token):
            return token
    return standard_tokens[-1]


def extract_detail_address(original_tokens: list[str], standard_address: str) -> str:
    standard_tokens = _split(standard_address)
    if not original_tokens or not standard_tokens:
        return ""

    match_index = -1

    # 1. 건물번호로 찾기 (예: "123", "123-45")
    building_match = _TRAILING_BUILDING_NUMBER.search(standard_address)
    if building_match:
        building_num = building_match.group(1)
        for i, token in enumerate(original_tokens):
            if token == building_num or building_num in token:
                match_index = i
                break

    # 2. 도로명으로 찾기 (도로명과 번호가 붙은 "테헤란로123" 포함)
    if match_index == -1:
        road_token = _road_name_token(standard_tokens)
        for i, token in enumerate(original_tokens):
            if road_token in token or token in road_token:
                match_index = i
                # 건물번호가 다음 토큰에 있을 수 있음
                if i + 1 < len(original_tokens) and BUILDING_NUMBER.match(original_tokens[i + 1]):
                    match_index = i + 1
                break

    # 3. 표준주소의 마지막 토큰으로 찾기
    if match_index == -1:
        last_token = standard_tokens[-1]
        for i, token in enumerate(original_tokens):
            if last_token in token or token in last_token:
                match_index = i
                break

    if 0 <= match_index < len(original_tokens) - 1:
        return " ".join(original_tokens[match_index + 1:])
    return ""


_PURE_HYPHEN = re.compile(r"^(\d+)\s*-\s*(\d+)$")
_EMBEDDED_HYPHEN = re.compile(r"(\d+)\s*-\s*(\d+)(?![가-힣a-zA-Z0-9])")
_NUM_DONG_WITHOUT_HO = re.compile(r"(\d{1,4})동\s*(\d{1,5})$")
_ALPHA_DONG_WITHOUT_HO = re.compile(r"([A-Za-z가-힣]{1,2})동\s*(\d{1,5})$")
_BASEMENT_B_FLOOR = re.compile(r"B(\d+)층", re.IGNORECASE)
_BASEMENT_B = re.compile(r"B(\d+)", re.IGNORECASE)
_BASEMENT_FLOOR = re.compile(r"지하\s*(\d+)층")
_BASEMENT_WITHOUT_FLOOR = re.compile(r"지하\s*(\d+)(?!층)")
_BASEMENT = re.compile(r"지하\s*(\d+)")
_FLOOR = re.compile(r"(\d+)층")
_FLOOR_F = re.compile(r"(\d+)\s*F", re.IGNORECASE)


def normalize_detail_address(detail: str) -> str:
    """
    Restructure a raw detail address. The order of the rewrites matters:
    each step is skipped when its canonical form is already present, so
    running this on its own output is a no-op.
    """
    normalized = detail.strip()

    match = _PURE_HYPHEN.match(normalized)
    if match:
        return f"{match.group(1)}동 {match.group(2)}호"

    if _EMBEDDED_HYPHEN.search(normalized) and "동" not in normalized:
        normalized = _EMBEDDED_HYPHEN.sub(r"\1동 \2호", normalized, count=1)

    if _NUM_DONG_WITHOUT_HO.search(normalized):
        normalized = _NUM_DONG_WITHOUT_HO.sub(r"\1동 \2호", normalized, count=1)

    if _ALPHA_DONG_WITHOUT_HO.search(normalized):
        normalized = _ALPHA_DONG_WITHOUT_HO.sub(r"\1동 \2호", normalized, count=1)

    # B1 → 지하 1층 (이미 지하 N층이 있으면 건너뜀)
    if (
        not _BASEMENT_B_FLOOR.search(normalized)
        and not _BASEMENT_FLOOR.search(normalized)
        and _BASEMENT_B.search(normalized)
    ):
        normalized = _BASEMENT_B.sub(r"지하 \1층", normalized, count=1)

    # 지하 2 → 지하 2층
    if not _BASEMENT_FLOOR.search(normalized) and _BASEMENT_WITHOUT_FLOOR.search(normalized):
        normalized = _BASEMENT.sub(r"지하 \1층", normalized, count=1)

    # 3F → 3층
    if not _FLOOR.search(normalized) and _FLOOR_F.search(normalized):
        normalized = _FLOOR_F.sub(r"\1층", normalized, count=1)

    return normalized


_WS = re.compile(r"\s+")


def match_dong_ho(text: str) -> bool:
    """동+호 결합 패턴 (예: '101동 202호', 'A동202')"""
    compact = _WS.sub("", text)
    return bool(re.search(r"[가-힣a-zA-Z0-9]+동\s*[0-9]+(호|실)?", compact)) and \
        bool(re.search(r"[0-9]+(호|실)?", compact))


def match_hyphen_pair(text: str) -> bool:
    return bool(re.search(r"[0-9]+\s*-\s*[0-9]+", text))


def match_floor_or_unit(text: str) -> bool:
    return bool(re.search(r"(지하|B|b)?\s*[0-9]+(호|층|F|f)", text, re.IGNORECASE)) or \
        bool(re.search(r"[0-9]+\s*(호|층)", text, re.IGNORECASE))


def has_dong(text: str) -> bool:
    compact = _WS.sub("", text)
    return bool(re.search(r"[가-힣a-zA-Z]{1,2}동", compact)) or \
        bool(re.search(r"[0-9]{1,4}동", compact)) or \
        match_hyphen_pair(text)


def has_ho(text: str) -> bool:
    return bool(re.search(r"[0-9]+\s*(호|ho)", text, re.IGNORECASE)) or match_hyphen_pair(text)


def has_floor_or_ho(text: str) -> bool:
    return bool(re.search(r"[0-9]+\s*(호|ho|층|f)", text, re.IGNORECASE)) or match_hyphen_pair(text)
