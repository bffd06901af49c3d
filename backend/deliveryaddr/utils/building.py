from enum import Enum

# 공동주택 건물구분코드 (도로명주소 API bdKdcd)
MULTI_UNIT_HOUSING_CODE = "1"

# 동+호 필수
STRICT_APT_KEYWORDS = ["아파트", "APT", "공동주택", "연립", "다세대"]
# 호만 있어도 됨
RELAXED_APT_KEYWORDS = [
    "빌라", "주상복합", "오피스텔", "타운하우스", "타워",
    "맨션", "팰리스", "빌딩", "레지던스", "하이츠",
]
ALL_APT_KEYWORDS = STRICT_APT_KEYWORDS + RELAXED_APT_KEYWORDS

# "삼성진빌" 처럼 '빌'로 끝나는 소규모 다세대 건물명
VILLA_SUFFIX = "빌"


class BuildingClass(str, Enum):
    STRICT_APARTMENT = "apartment"
    RELAXED_APARTMENT = "villa"
    GENERAL = "general"


def is_strict_apartment(bd_kdcd: str | None, bd_nm: str | None) -> bool:
    if bd_kdcd == MULTI_UNIT_HOUSING_CODE:
        return True
    return bool(bd_nm) and any(keyword in bd_nm for keyword in STRICT_APT_KEYWORDS)


def is_relaxed_apartment(bd_kdcd: str | None, bd_nm: str | None) -> bool:
    if is_strict_apartment(bd_kdcd, bd_nm):
        return False
    if not bd_nm:
        return False
    if any(keyword in bd_nm for keyword in RELAXED_APT_KEYWORDS):
        return True
    return bd_nm.endswith(VILLA_SUFFIX)


def is_apartment(bd_kdcd: str | None, bd_nm: str | None) -> bool:
    return is_strict_apartment(bd_kdcd, bd_nm) or is_relaxed_apartment(bd_kdcd, bd_nm)


def classify_building(bd_kdcd: str | None, bd_nm: str | None) -> BuildingClass:
    if is_strict_apartment(bd_kdcd, bd_nm):
        return BuildingClass.STRICT_APARTMENT
    if is_relaxed_apartment(bd_kdcd, bd_nm):
        return BuildingClass.RELAXED_APARTMENT
    return BuildingClass.GENERAL
