import re

# 도서산간 지역
ISLAND_REMOTE_REGIONS = ["제주", "울릉", "신안", "완도", "진도", "흑산도", "백령도", "연평도"]


def is_island_remote_area(address: str) -> bool:
    return any(region in address for region in ISLAND_REMOTE_REGIONS)


def is_length_exceeded(full_address: str, max_length: int) -> bool:
    return len(full_address) > max_length


def format_phone_number(phone: str) -> tuple[str, bool]:
    """
    Hyphenate a Korean phone number.
    Returns (formatted, modified). Unknown shapes are returned unchanged.
    """
    if not phone:
        return "", False

    digits = re.sub(r"\D", "", phone)
    formatted = None

    if len(digits) == 11 and digits[:3] in ("010", "070", "050", "080"):
        formatted = f"{digits[:3]}-{digits[3:7]}-{digits[7:]}"
    elif len(digits) == 10:
        if digits.startswith("02"):
            formatted = f"{digits[:2]}-{digits[2:6]}-{digits[6:]}"
        else:
            formatted = f"{digits[:3]}-{digits[3:6]}-{digits[6:]}"
    elif len(digits) == 9 and digits.startswith("02"):
        formatted = f"{digits[:2]}-{digits[2:5]}-{digits[5:]}"
    elif len(digits) == 8 and digits[:2] in ("15", "16", "18"):
        # 대표번호 (1588-xxxx 등)
        formatted = f"{digits[:4]}-{digits[4:]}"

    if formatted is None:
        return phone, False
    return formatted, formatted != phone
