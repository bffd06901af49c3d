import pytest

from deliveryaddr.utils.text_normalizer import expand_region_abbreviation, normalize_address, tokenize


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("  서울   강남구  테헤란로 123 ", "서울 강남구 테헤란로 123"),
        ("서울 강남구,  테헤란로 123 - 4 (구:역삼동)", "서울 강남구 테헤란로 123-4"),
        ("서울·강남구/테헤란로;123", "서울 강남구 테헤란로 123"),
        ("경기 성남시 분당구 (옛 정자동) 정자일로 95", "경기 성남시 분당구 정자일로 95"),
        ("부산 해운대구 (旧 우동) 센텀로 10", "부산 해운대구 센텀로 10"),
    ],
)
def test_normalize_address(raw, expected):
    assert normalize_address(raw) == expected


SEPARATOR_FORMS = ["·", ",", "/", ".", ";", ":"]
FORMER_NAME_FORMS = ["(구:역삼동)", "(구 역삼동)", "(옛역삼동)", "(옛 역삼동)", "(旧역삼동)", "(旧 역삼동)"]


@pytest.mark.parametrize("separator", SEPARATOR_FORMS)
@pytest.mark.parametrize("former", FORMER_NAME_FORMS)
def test_normalize_address_is_idempotent(separator, former):
    raw = f"  서울{separator}강남구{separator} 테헤란로 123 - 4 {former}{former} 101동 "
    once = normalize_address(raw)
    assert normalize_address(once) == once
    assert "역삼동" not in once
    assert separator not in once


def test_normalize_address_stacked_former_names():
    once = normalize_address("인천 미추홀구 주안로 122 (구:주안동)(옛 주안1동)")
    assert once == "인천 미추홀구 주안로 122"
    assert normalize_address(once) == once


def test_normalize_keeps_other_parentheses():
    assert normalize_address("강남구 테헤란로 123 (역삼동)") == "강남구 테헤란로 123 (역삼동)"


def test_tokenize_drops_empty_tokens():
    assert tokenize("강남구 테헤란로  123") == ["강남구", "테헤란로", "123"]


def test_expand_region_only_first_token():
    assert expand_region_abbreviation("서울 강남구 테헤란로 123") == "서울특별시 강남구 테헤란로 123"
    assert expand_region_abbreviation("강남구 서울 테헤란로") == "강남구 서울 테헤란로"
    assert expand_region_abbreviation("서울특별시 강남구") == "서울특별시 강남구"
