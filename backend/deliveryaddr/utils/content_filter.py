import re

FORBIDDEN_WORDS = [
    "미정", "몰라", "unknown", "모름", "나중에",
    "추후", "확인요", "테스트", "test",
    "ㅇㅇ", "ㅁㅁ", "ㄴㄴ", "asdf", "qwer", "zxcv",
]

# "상세주소 없음" 같은 명시적 표현 (비아파트는 허용)
EXPLICIT_NO_DETAIL_PATTERNS = [
    re.compile(r"상세\s*주소\s*없음", re.IGNORECASE),
    re.compile(r"상세\s*주소\s*없어요", re.IGNORECASE),
]

# 토큰 단위 자리표시자 (xxx, 000, 1111, ---, ...)
FORBIDDEN_PATTERNS = [
    re.compile(r"^[xX]+$"),
    re.compile(r"^0{3,}$"),
    re.compile(r"^1{4,}$"),
    re.compile(r"^-{3,}$"),
    re.compile(r"^\.{3,}$"),
]

MEMO_KEYWORDS = ["부재시", "문앞", "경비실", "택배함", "연락주세요", "현관비밀번호", "공동현관"]

_INVALID_SYMBOLS = re.compile(r"[<>|{}\\`~]")
_CONTROL_CHARS = re.compile(r"[\x00-\x1F]")
_MOBILE_PHONE = re.compile(r"01[0-9]-?\d{3,4}-?\d{4}")
_MEMO = re.compile("(" + "|".join(MEMO_KEYWORDS) + ")")
_HO_NUMBER = re.compile(r"(\d+)호")
_DONG_NUMBER = re.compile(r"(\d+)동")

MAX_UNIT_NUMBER = 9999
# 대단지 아파트는 4자리 동 번호도 존재 (위례 6312동 등)
MAX_BLOCK_NUMBER = 9999


def has_explicit_no_detail(text: str) -> bool:
    return any(pattern.search(text) for pattern in EXPLICIT_NO_DETAIL_PATTERNS)


def find_forbidden_word(text: str, is_apartment: bool) -> str | None:
    """Return the offending word/token, or None if the detail is clean."""
    if has_explicit_no_detail(text):
        return "상세주소없음" if is_apartment else None

    compact = re.sub(r"\s+", "", text.lower())
    for word in FORBIDDEN_WORDS:
        if word.lower() in compact:
            return word

    for token in text.split():
        for pattern in FORBIDDEN_PATTERNS:
            if pattern.search(token):
                return token

    return None


def has_forbidden_word(text: str, is_apartment: bool) -> bool:
    return find_forbidden_word(text, is_apartment) is not None


def has_invalid_characters(text: str) -> bool:
    return bool(_INVALID_SYMBOLS.search(text) or _CONTROL_CHARS.search(text))


def has_mixed_memo(text: str) -> bool:
    return bool(_MOBILE_PHONE.search(text) or _MEMO.search(text))


def has_unrealistic_value(text: str) -> bool:
    ho_match = _HO_NUMBER.search(text)
    if ho_match:
        ho = int(ho_match.group(1))
        if ho > MAX_UNIT_NUMBER or ho == 0:
            return True

    dong_match = _DONG_NUMBER.search(text)
    if dong_match:
        dong = int(dong_match.group(1))
        if dong > MAX_BLOCK_NUMBER or dong == 0:
            return True

    return False
