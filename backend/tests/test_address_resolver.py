import pytest

from conftest import FakeAI, FakeLearnedStore, FakeRegistry, make_candidate
from deliveryaddr.schemas.address import AddressStatus
from deliveryaddr.services.address_resolver import AddressResolver
from deliveryaddr.services.detail_validation import AIPolicy
from deliveryaddr.services.juso_service import JusoConfigError

BASE = "강남구 테헤란로 123"


def resolver_for(*candidates, **kwargs):
    return AddressResolver(FakeRegistry({BASE: list(candidates)}), **kwargs)


def test_round_trip_apartment(resolver):
    result = resolver.resolve("강남구 테헤란로 123 101동 505")

    assert result.status == AddressStatus.VALID
    assert result.reason_code == "OK_STD"
    assert result.standard_address == "서울특별시 강남구 테헤란로 123"
    assert result.detail_address == "101동 505"
    assert result.normalized_detail_address == "101동 505호"
    assert result.full_address == "서울특별시 강남구 테헤란로 123 101동 505"
    assert result.zip_code == "06133"
    assert result.building_name == "래미안아파트"


def test_messy_input_is_normalized_first(resolver):
    result = resolver.resolve("  강남구,테헤란로 123   3-402 ")
    assert result.status == AddressStatus.VALID
    assert result.detail_address == "3-402"
    assert result.normalized_detail_address == "3동 402호"


def test_missing_api_key_checked_first():
    resolver = AddressResolver(FakeRegistry(configured=False))
    assert resolver.resolve("").reason_code == "E_API_KEY_MISSING"
    assert resolver.resolve(BASE).status == AddressStatus.INVALID


def test_config_error_from_registry():
    resolver = AddressResolver(FakeRegistry(error=JusoConfigError("missing")))
    assert resolver.resolve(BASE).reason_code == "E_API_KEY_MISSING"


@pytest.mark.parametrize("raw", [None, "", "   "])
def test_empty_input(resolver, raw):
    result = resolver.resolve(raw)
    assert result.status == AddressStatus.INVALID
    assert result.reason_code == "E_ADDRESS_EMPTY"


def test_single_token_never_reaches_registry(registry, resolver):
    result = resolver.resolve("테헤란로")
    assert result.reason_code == "E_ADDRESS_TOO_SHORT"
    assert registry.queries == []


def test_registry_failure(failing_registry):
    result = AddressResolver(failing_registry).resolve(BASE + " 101동")
    assert result.status == AddressStatus.INVALID
    assert result.reason_code == "E_API_CALL_FAILED"


def test_unexpected_registry_error_is_invalid():
    registry = FakeRegistry(error=KeyError("juso"))
    result = AddressResolver(registry).resolve(BASE + " 101동")
    assert result.status == AddressStatus.INVALID
    assert result.reason_code == "E_API_CALL_FAILED"


def test_base_not_found():
    registry = FakeRegistry()
    result = AddressResolver(registry).resolve("없는구 없는로 1 101동 505")
    assert result.status == AddressStatus.INVALID
    assert result.reason_code == "E_BASE_NOT_FOUND"
    assert len(registry.queries) == 8


def test_forbidden_detail_on_general_building():
    result = resolver_for(make_candidate()).resolve(BASE + " unknown")
    assert result.status == AddressStatus.WARNING
    assert result.reason_code == "E_DETAIL_FORBIDDEN"
    assert result.standard_address == "서울특별시 강남구 테헤란로 123"


def test_invalid_characters(resolver):
    result = resolver.resolve(BASE + " 101동<505>")
    assert result.reason_code == "E_DETAIL_INVALID_CHARS"


def test_mixed_memo(resolver):
    result = resolver.resolve(BASE + " 101동 부재시")
    assert result.status == AddressStatus.WARNING
    assert result.reason_code == "W_DETAIL_MIXED_MEMO"


def test_suspect_unit(resolver):
    assert resolver.resolve(BASE + " 101동 0호").reason_code == "W_DETAIL_SUSPECT_UNIT"


def test_apartment_missing_unit(resolver):
    result = resolver.resolve(BASE)
    assert result.status == AddressStatus.WARNING
    assert result.reason_code == "W_DETAIL_MISSING_UNIT"
    assert result.detail_address == ""


def test_general_building_without_detail_is_valid():
    result = resolver_for(make_candidate()).resolve(BASE)
    assert result.status == AddressStatus.VALID
    assert result.full_address == "서울특별시 강남구 테헤란로 123"


def test_ambiguous_base_when_low_confidence():
    other = dict(sgg_nm="서초구", rn="선릉로", bd_nm="래미안아파트", bd_kdcd="1")
    first = make_candidate(road_addr_part1="서울특별시 서초구 선릉로 123", **other)
    second = make_candidate(road_addr_part1="서울특별시 서초구 선릉로 123-1", **other)

    result = resolver_for(first, second).resolve(BASE + " 101동 505")

    assert result.status == AddressStatus.WARNING
    assert result.reason_code == "W_BASE_AMBIGUOUS"
    assert result.normalized_detail_address == "101동 505호"


def test_clear_winner_is_not_ambiguous():
    # 80 vs 60
    best = make_candidate(bd_nm="래미안아파트", bd_kdcd="1")
    runner_up = make_candidate(road_addr_part1="서울특별시 강남구 테헤란로 123-9", sgg_nm="")
    registry = FakeRegistry({"강남구 역삼동 테헤란로 123": [runner_up, best]})

    result = AddressResolver(registry).resolve("강남구 역삼동 테헤란로 123 101동 505")

    assert result.status == AddressStatus.VALID
    assert result.building_name == "래미안아파트"


def test_ai_correction_overrides_normalized_detail(registry):
    learned = FakeLearnedStore()
    resolver = AddressResolver(
        registry,
        learned_store=learned,
        ai=FakeAI("101동 1호", 0.9),
        policy=AIPolicy(enabled=True, threshold=0.9),
    )

    result = resolver.resolve(BASE + " 101동")

    assert result.status == AddressStatus.VALID
    assert result.detail_address == "101동"
    assert result.normalized_detail_address == "101동 1호"
    assert learned.saved
