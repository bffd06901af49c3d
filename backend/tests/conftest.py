import os

import pytest

# 테스트용 환경 변수 세팅 (deliveryaddr 모듈 임포트 전에 적용)
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JUSO_API_KEY", "")
os.environ.setdefault("ENABLE_AI_ADDRESS_NORMALIZATION", "false")
os.environ.setdefault("BATCH_PAUSE_SECONDS", "0")

from fastapi import FastAPI
from fastapi.testclient import TestClient

from deliveryaddr.api.endpoints import address as address_endpoints
from deliveryaddr.db.session import create_db_engine, create_session_factory, get_db, init_db
from deliveryaddr.schemas.address import AIEnhancementResult, RegistryCandidate, RegistrySearchResult
from deliveryaddr.schemas.learning import PatternAnalysis
from deliveryaddr.services.address_resolver import AddressResolver
from deliveryaddr.services.bulk_service import BulkJobManager
from deliveryaddr.services.juso_service import JusoAPIError
from deliveryaddr.services.learning_service import AddressLearningService


def make_candidate(
    road_addr_part1="서울특별시 강남구 테헤란로 123",
    si_nm="서울특별시",
    sgg_nm="강남구",
    emd_nm="역삼동",
    rn="테헤란로",
    bd_nm="",
    bd_kdcd="0",
    zip_no="06133",
):
    return RegistryCandidate(
        road_addr_part1=road_addr_part1,
        si_nm=si_nm,
        sgg_nm=sgg_nm,
        emd_nm=emd_nm,
        rn=rn,
        bd_nm=bd_nm,
        bd_kdcd=bd_kdcd,
        zip_no=zip_no,
    )


class FakeRegistry:
    """Keyword → candidates lookup; records every query it receives."""

    def __init__(self, entries=None, configured=True, error=None):
        self.entries = dict(entries or {})
        self.configured = configured
        self.error = error
        self.queries = []

    @property
    def is_configured(self):
        return self.configured

    def query(self, keyword, page=1):
        self.queries.append(keyword)
        if self.error is not None:
            raise self.error
        candidates = self.entries.get(keyword, [])
        return RegistrySearchResult(total_count=len(candidates), candidates=candidates)


class FakePatternStore:
    def __init__(self, match=None, error=None):
        self.match = match
        self.error = error
        self.calls = []

    def find_by_pattern(self, detail, building_type):
        self.calls.append((detail, building_type))
        if self.error is not None:
            raise self.error
        return self.match


class FakeLearnedStore:
    def __init__(self, correction=None, error=None):
        self.correction = correction
        self.error = error
        self.saved = []

    def find(self, detail, building_type):
        if self.error is not None:
            raise self.error
        return self.correction

    def save(self, original, corrected, building_type, correction_type):
        self.saved.append((original, corrected, building_type, correction_type))


class FakePatternAnalyzer:
    """Stands in for LLMService.analyze_pattern; every call is recorded."""

    def __init__(self, enabled=True, error=None, **analysis):
        self.enabled = enabled
        self.error = error
        self.analysis = {
            "correctedAddress": "101동 1001호",
            "errorPattern": "HYPHEN_SEPARATED",
            "problemDescription": "동과 호가 하이픈으로만 구분됨",
            "patternRegex": r"^(\d{1,4})-(\d{1,5})$",
            "conversionTemplate": "$1동 $2호",
            "solution": "하이픈 앞은 동, 뒤는 호로 표기",
            "confidence": 0.9,
            "similarPatterns": ["102-1002", "203-504"],
            **analysis,
        }
        self.calls = []

    def analyze_pattern(self, detail, building_type="general"):
        self.calls.append((detail, building_type))
        if self.error is not None:
            raise self.error
        return PatternAnalysis.model_validate({**self.analysis, "originalAddress": detail, "ai_model": "fake-model"})


class FakeAI:
    def __init__(self, normalized="", confidence=0.0, has_error=False, error=None):
        self.result = AIEnhancementResult(
            normalized=normalized, confidence=confidence, reasoning="test", has_error=has_error
        )
        self.error = error
        self.calls = []

    def normalize_detail(self, detail, building_class, building_name=None):
        self.calls.append(detail)
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture()
def apartment():
    return make_candidate(bd_nm="래미안아파트", bd_kdcd="1")


@pytest.fixture()
def registry(apartment):
    return FakeRegistry({"강남구 테헤란로 123": [apartment]})


@pytest.fixture()
def failing_registry():
    return FakeRegistry(error=JusoAPIError("timeout"))


@pytest.fixture()
def resolver(registry):
    return AddressResolver(registry)


@pytest.fixture()
def session_factory():
    # 테스트마다 새 메모리 SQLite
    engine = create_db_engine("sqlite://")
    init_db(engine)
    yield create_session_factory(engine)
    engine.dispose()


@pytest.fixture()
def learning(session_factory):
    return AddressLearningService(session_factory=session_factory)


@pytest.fixture()
def job_manager():
    return BulkJobManager()


@pytest.fixture()
def analyzer():
    return FakePatternAnalyzer()


@pytest.fixture()
def client(session_factory, registry, resolver, learning, job_manager, analyzer):
    app = FastAPI()
    app.include_router(address_endpoints.router, prefix="/api/v1/address")

    def _get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[address_endpoints.get_resolver] = lambda: resolver
    app.dependency_overrides[address_endpoints.get_registry] = lambda: registry
    app.dependency_overrides[address_endpoints.get_learning_service] = lambda: learning
    app.dependency_overrides[address_endpoints.get_job_manager] = lambda: job_manager
    app.dependency_overrides[address_endpoints.get_llm_service] = lambda: analyzer

    with TestClient(app) as c:
        yield c
