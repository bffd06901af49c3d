from conftest import FakeRegistry, make_candidate
from deliveryaddr.schemas.address import Confidence, RegistrySearchResult
from deliveryaddr.services.candidate_resolver import (
    CandidateResolver,
    RETRY_STRATEGIES,
    classify_confidence,
    rank_candidates,
    score_candidate,
)


def test_full_score():
    candidate = make_candidate(bd_nm="래미안")
    original = "서울특별시 강남구 역삼동 테헤란로 123 래미안 101동"
    assert score_candidate(candidate, original, original.split()) == 115


def test_empty_fields_score_nothing():
    candidate = make_candidate(si_nm="", sgg_nm="", emd_nm="", rn="", bd_nm="")
    assert score_candidate(candidate, "강남구 테헤란로 123", ["강남구", "테헤란로", "123"]) == 0


def test_confidence_tiers():
    assert classify_confidence(70, None) == Confidence.HIGH
    assert classify_confidence(80, 60) == Confidence.HIGH
    assert classify_confidence(70, 56) == Confidence.MEDIUM
    assert classify_confidence(50, None) == Confidence.MEDIUM
    assert classify_confidence(40, None) == Confidence.LOW


def test_rank_is_stable_for_equal_scores():
    first = make_candidate(road_addr_part1="A", rn="선릉로")
    second = make_candidate(road_addr_part1="B", rn="선릉로")
    ranked = rank_candidates([first, second], "강남구 테헤란로 123", ["강남구", "테헤란로", "123"])
    assert [r.candidate.road_addr_part1 for r in ranked] == ["A", "B"]


def test_trim_search_finds_base_and_detail(registry):
    tokens = ["강남구", "테헤란로", "123", "101동", "505"]
    match = CandidateResolver(registry).resolve(" ".join(tokens), tokens)

    assert match is not None
    assert match.strategy == "trim"
    assert match.detail_address == "101동 505"
    assert match.confidence == Confidence.HIGH
    assert not match.multiple_results
    assert registry.queries == [
        "강남구 테헤란로 123 101동 505",
        "강남구 테헤란로 123 101동",
        "강남구 테헤란로 123",
    ]


def test_trim_never_queries_single_token():
    registry = FakeRegistry()
    tokens = ["강남구", "테헤란로", "123"]
    CandidateResolver(registry).resolve(" ".join(tokens), tokens)

    trim_queries = registry.queries[:len(registry.queries) - len(RETRY_STRATEGIES)]
    assert trim_queries == ["강남구 테헤란로 123", "강남구 테헤란로"]
    assert all(len(q.split()) >= 2 for q in trim_queries)


def test_trim_stops_after_max_attempts():
    registry = FakeRegistry()
    tokens = ["강남구", "테헤란로", "123", "101동", "505", "부재시", "문앞"]
    assert CandidateResolver(registry).resolve(" ".join(tokens), tokens) is None
    # 4 trim attempts + 4 retry strategies
    assert len(registry.queries) == 8


def test_retry_strategies_run_in_order():
    registry = FakeRegistry()
    tokens = ["서울", "강남구", "래미안아파트", "(역삼동)"]
    assert CandidateResolver(registry).resolve(" ".join(tokens), tokens) is None

    assert registry.queries[-4:] == [
        "서울 강남구 래미안아파트",
        "서울 강남구 (역삼동)",
        "서울강남구래미안아파트(역삼동)",
        "서울특별시 강남구 래미안아파트 (역삼동)",
    ]


def test_retry_region_expansion_hit():
    candidate = make_candidate()
    registry = FakeRegistry({"서울특별시 강남구 테헤란로 123 101동": [candidate]})
    tokens = ["서울", "강남구", "테헤란로", "123", "101동"]

    match = CandidateResolver(registry).resolve(" ".join(tokens), tokens)

    assert match.strategy == "expand_region"
    assert match.detail_address == "101동"


def test_multiple_candidates_pick_highest_score():
    wrong = make_candidate(road_addr_part1="서울특별시 서초구 선릉로 123", sgg_nm="서초구", rn="선릉로")
    right = make_candidate()
    registry = FakeRegistry({"강남구 테헤란로 123": [wrong, right]})
    tokens = ["강남구", "테헤란로", "123", "101동"]

    match = CandidateResolver(registry).resolve(" ".join(tokens), tokens)

    assert match.candidate.road_addr_part1 == "서울특별시 강남구 테헤란로 123"
    assert match.multiple_results
    # 70 vs 0
    assert match.confidence == Confidence.HIGH


def test_single_candidate_with_larger_total_is_scored():
    class PagedRegistry(FakeRegistry):
        def query(self, keyword, page=1):
            self.queries.append(keyword)
            return RegistrySearchResult(total_count=3, candidates=[make_candidate(rn="선릉로", sgg_nm="서초구")])

    registry = PagedRegistry()
    tokens = ["강남구", "테헤란로", "123"]
    match = CandidateResolver(registry).resolve(" ".join(tokens), tokens)

    assert match.multiple_results
    assert match.confidence == Confidence.LOW


def test_trimmed_tokens_kept_as_detail_when_extraction_finds_nothing():
    # 지번 검색으로 찾은 경우 표준주소에 원본 토큰이 없어 분리가 실패한다.
    # 이때는 잘라낸 토큰을 상세주소로 유지한다 (빈 상세주소로 버리지 않음).
    candidate = make_candidate(road_addr_part1="서울특별시 강남구 테헤란로 152")
    registry = FakeRegistry({"역삼동 737": [candidate]})
    tokens = ["역삼동", "737", "101동"]

    match = CandidateResolver(registry).resolve(" ".join(tokens), tokens)

    assert match.strategy == "trim"
    assert match.detail_address == "101동"


def test_remove_building_name_keeps_tokens_when_too_few_remain():
    remove_building_name = dict(RETRY_STRATEGIES)["remove_building_name"]

    assert remove_building_name(["래미안아파트", "테헤란로"]) == ["래미안아파트", "테헤란로"]
    assert remove_building_name(["강남구", "래미안아파트", "테헤란로"]) == ["강남구", "테헤란로"]


def test_retry_collapse_spaces_hit():
    candidate = make_candidate()
    registry = FakeRegistry({"강남구테헤란로123101동": [candidate]})
    tokens = ["강남구", "테헤란로", "123", "101동"]

    match = CandidateResolver(registry).resolve(" ".join(tokens), tokens)

    assert match.strategy == "collapse_spaces"
    assert match.candidate.road_addr_part1 == "서울특별시 강남구 테헤란로 123"
    assert match.detail_address == "101동"
    assert registry.queries[-1] == "강남구테헤란로123101동"
