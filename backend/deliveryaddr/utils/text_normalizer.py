import re

# 구분자 → 공백
SEPARATOR_MAP = {
    "·": " ",
    ",": " ",
    "/": " ",
    ".": " ",
    ";": " ",
    ":": " ",
}

# 시도 약어 → 정식 명칭 (첫 토큰에만 적용)
REGION_ABBREVIATIONS = {
    "서울": "서울특별시",
    "부산": "부산광역시",
    "대구": "대구광역시",
    "인천": "인천광역시",
    "광주": "광주광역시",
    "대전": "대전광역시",
    "울산": "울산광역시",
    "세종": "세종특별자치시",
    "경기": "경기도",
    "강원": "강원특별자치도",
    "충북": "충청북도",
    "충남": "충청남도",
    "전북": "전북특별자치도",
    "전남": "전라남도",
    "경북": "경상북도",
    "경남": "경상남도",
    "제주": "제주특별자치도",
}

# (구: ...), (옛 ...), (旧 ...) 형태의 옛 명칭 표기
_FORMER_NAME_PATTERNS = [
    re.compile(r"\(구:?[^)]*\)"),
    re.compile(r"\(옛[^)]*\)"),
    re.compile(r"\(旧[^)]*\)"),
]

_WHITESPACE = re.compile(r"\s+")
_HYPHEN_SPACING = re.compile(r"\s*-\s*")


def normalize_address(raw: str) -> str:
    """
    Clean raw address text.
    e.g., "서울 강남구,  테헤란로 123 - 4 (구:역삼동)" → "서울 강남구 테헤란로 123-4"
    """
    normalized = _WHITESPACE.sub(" ", raw.strip())

    for src, dst in SEPARATOR_MAP.items():
        normalized = normalized.replace(src, dst)

    normalized = _HYPHEN_SPACING.sub("-", normalized)

    # 중첩 괄호가 벗겨지며 새 표기가 드러날 수 있어 더 이상 변화가 없을 때까지 반복
    while True:
        stripped = normalized
        for pattern in _FORMER_NAME_PATTERNS:
            stripped = pattern.sub("", stripped)
        if stripped == normalized:
            break
        normalized = stripped

    # 분리자 치환 이후 다시 공백/하이픈 정리
    normalized = _WHITESPACE.sub(" ", normalized).strip()
    normalized = _HYPHEN_SPACING.sub("-", normalized)
    return normalized


def tokenize(address: str) -> list[str]:
    return [t for t in address.split(" ") if t]


def expand_region_abbreviation(address: str) -> str:
    """첫 토큰이 시도 약어이면 정식 명칭으로 치환 (예: '서울' → '서울특별시')"""
    tokens = address.split(" ")
    if tokens and tokens[0] in REGION_ABBREVIATIONS:
        tokens[0] = REGION_ABBREVIATIONS[tokens[0]]
        return " ".join(tokens)
    return address
