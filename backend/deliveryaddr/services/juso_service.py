import logging
import requests
from dotenv import load_dotenv
from pydantic import ValidationError
from typing import Optional

from deliveryaddr.core.config import settings
from deliveryaddr.schemas.address import RegistryCandidate, RegistrySearchResult

load_dotenv()

logger = logging.getLogger(__name__)

# 승인되지 않은 KEY / 기간 만료 KEY 등
AUTH_ERROR_CODES = {"E0001", "E0014"}


class JusoConfigError(Exception):
    """JUSO_API_KEY is not configured."""


class JusoAPIError(Exception):
    """Transport, HTTP or API-level failure of the Road Address API."""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code


class JusoService:
    """
    Service to interact with Korea Road Address API (juso.go.kr)
    """
    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        count_per_page: Optional[int] = None,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = settings.JUSO_API_KEY if api_key is None else api_key
        # Search API URL (검색 API)
        self.base_url = base_url or settings.JUSO_API_URL
        self.timeout = timeout or settings.JUSO_TIMEOUT_SECONDS
        self.count_per_page = count_per_page or settings.JUSO_COUNT_PER_PAGE
        self.session = session or requests.Session()

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key) and self.api_key != "your_api_key_here"

    def query(self, keyword: str, page: int = 1) -> RegistrySearchResult:
        """
        Search for an address using the keyword.
        Raises JusoConfigError / JusoAPIError; an empty result is not an error.
        """
        if not self.is_configured:
            raise JusoConfigError("Juso API Key is missing.")

        params = {
            "confmKey": self.api_key,
            "currentPage": page,
            "countPerPage": self.count_per_page,
            "keyword": keyword,
            "resultType": "json",
        }

        logger.info("[Juso] Calling API: %r", keyword)
        try:
            response = self.session.get(self.base_url, params=params, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except requests.RequestException as e:
            raise JusoAPIError(f"API call failed: {e}") from e
        except ValueError as e:
            raise JusoAPIError(f"Invalid JSON response: {e}") from e

        try:
            results = data.get("results") or {}
            common = results.get("common") or {}
            error_code = str(common.get("errorCode", "0"))
            error_message = common.get("errorMessage")
        except (AttributeError, TypeError) as e:
            raise JusoAPIError(f"Unexpected response shape: {e}") from e
        if error_code in AUTH_ERROR_CODES:
            raise JusoAPIError(error_message or "API key rejected", code=error_code)
        if error_code != "0":
            # 검색어 형식 오류 등은 '결과 없음'으로 취급 (다음 검색 전략으로 진행)
            logger.warning("[Juso] API error %s for %r: %s", error_code, keyword, error_message)
            return RegistrySearchResult(total_count=0, error_code=error_code, error_message=error_message)

        try:
            total_count = int(common.get("totalCount") or 0)
        except (TypeError, ValueError):
            total_count = 0

        try:
            candidates = [RegistryCandidate.model_validate(item) for item in results.get("juso") or []]
        except (AttributeError, TypeError, ValidationError) as e:
            raise JusoAPIError(f"Unexpected candidate shape: {e}") from e
        logger.debug("[Juso] %r -> totalCount=%s, returned=%s", keyword, total_count, len(candidates))
        return RegistrySearchResult(total_count=total_count, candidates=candidates)


juso_service = JusoService()
