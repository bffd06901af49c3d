import logging
import re
from typing import Callable, List, Optional, Protocol, Tuple

from deliveryaddr.schemas.address import (
    CandidateMatch,
    Confidence,
    RegistryCandidate,
    RegistrySearchResult,
    ScoredCandidate,
)
from deliveryaddr.utils.building import ALL_APT_KEYWORDS
from deliveryaddr.utils.detail import extract_detail_address
from deliveryaddr.utils.text_normalizer import expand_region_abbreviation, tokenize

logger = logging.getLogger(__name__)

MAX_TRIM_ATTEMPTS = 4
MIN_KEYWORD_TOKENS = 2

# Candidate scoring weights
ROAD_NAME_SCORE = 50
CITY_SCORE = 20
DISTRICT_SCORE = 20
NEIGHBORHOOD_SCORE = 10
BUILDING_NAME_SCORE = 15

HIGH_CONFIDENCE_SCORE = 70
HIGH_CONFIDENCE_MARGIN = 15
MEDIUM_CONFIDENCE_SCORE = 50


class Registry(Protocol):
    def query(self, keyword: str) -> RegistrySearchResult: ...


def score_candidate(candidate: RegistryCandidate, original_address: str, input_tokens: List[str]) -> int:
    original = original_address.lower()
    score = 0

    if candidate.rn and candidate.rn.lower() in original:
        score += ROAD_NAME_SCORE
    if candidate.si_nm and candidate.si_nm.lower() in original:
        score += CITY_SCORE
    if candidate.sgg_nm and candidate.sgg_nm.lower() in original:
        score += DISTRICT_SCORE
    if candidate.emd_nm and candidate.emd_nm.lower() in original:
        score += NEIGHBORHOOD_SCORE

    if candidate.bd_nm:
        bd_nm = candidate.bd_nm.lower()
        for token in input_tokens:
            token = token.lower()
            if token in bd_nm or bd_nm in token:
                score += BUILDING_NAME_SCORE
                break

    return score


def classify_confidence(best_score: int, second_score: Optional[int]) -> Confidence:
    if best_score >= HIGH_CONFIDENCE_SCORE and (
        second_score is None or best_score - second_score >= HIGH_CONFIDENCE_MARGIN
    ):
        return Confidence.HIGH
    if best_score >= MEDIUM_CONFIDENCE_SCORE:
        return Confidence.MEDIUM
    return Confidence.LOW


def rank_candidates(
    candidates: List[RegistryCandidate], original_address: str, input_tokens: List[str]
) -> List[ScoredCandidate]:
    scored = [
        ScoredCandidate(candidate=c, score=score_candidate(c, original_address, input_tokens))
        for c in candidates
    ]
    # stable: equal scores keep registry order
    return sorted(scored, key=lambda s: s.score, reverse=True)


def select_best_candidate(
    candidates: List[RegistryCandidate], original_address: str, input_tokens: List[str]
) -> Tuple[ScoredCandidate, Confidence]:
    ranked = rank_candidates(candidates, original_address, input_tokens)
    best = ranked[0]
    second = ranked[1].score if len(ranked) > 1 else None
    return best, classify_confidence(best.score, second)


# --- Retry strategies (each derives a keyword from the ORIGINAL tokens) ---

def _remove_parentheses(tokens: List[str]) -> List[str]:
    stripped = (re.sub(r"\([^)]*\)", "", t).strip() for t in tokens)
    return [t for t in stripped if t]


def _remove_building_name(tokens: List[str]) -> List[str]:
    filtered = [t for t in tokens if not any(k in t for k in ALL_APT_KEYWORDS)]
    return filtered if len(filtered) >= MIN_KEYWORD_TOKENS else tokens


def _collapse_spaces(tokens: List[str]) -> List[str]:
    return ["".join(tokens)]


def _expand_region(tokens: List[str]) -> List[str]:
    return tokenize(expand_region_abbreviation(" ".join(tokens)))


RETRY_STRATEGIES: List[Tuple[str, Callable[[List[str]], List[str]]]] = [
    ("remove_parentheses", _remove_parentheses),
    ("remove_building_name", _remove_building_name),
    ("collapse_spaces", _collapse_spaces),
    ("expand_region", _expand_region),
]


class CandidateResolver:
    """
    Finds the registry record for a normalized address.

    Phase A trims trailing tokens (up to MAX_TRIM_ATTEMPTS queries, never
    with fewer than two tokens); Phase B runs RETRY_STRATEGIES in order.
    Registry errors propagate to the caller.
    """

    def __init__(self, registry: Registry):
        self.registry = registry

    def resolve(self, normalized_address: str, tokens: List[str]) -> Optional[CandidateMatch]:
        match = self._trim_search(normalized_address, tokens)
        if match is None:
            match = self._retry_search(normalized_address, tokens)
        if match is None:
            logger.info("[Resolver] Building not found: %r", normalized_address)
        return match

    def _select(
        self, result: RegistrySearchResult, normalized_address: str, tokens: List[str]
    ) -> Tuple[RegistryCandidate, Confidence, bool]:
        if len(result.candidates) == 1 and result.total_count <= 1:
            return result.candidates[0], Confidence.HIGH, False
        best, confidence = select_best_candidate(result.candidates, normalized_address, tokens)
        logger.info(
            "[Resolver] Multiple results (%s), selected %r with %s confidence (score=%s)",
            result.total_count, best.candidate.road_addr_part1, confidence.value, best.score,
        )
        return best.candidate, confidence, True

    def _trim_search(self, normalized_address: str, tokens: List[str]) -> Optional[CandidateMatch]:
        current = list(tokens)
        trimmed_parts: List[str] = []

        for attempt in range(MAX_TRIM_ATTEMPTS):
            if len(current) < MIN_KEYWORD_TOKENS:
                break

            keyword = " ".join(current)
            logger.info("[Resolver] Trim attempt %s: %r", attempt + 1, keyword)
            result = self.registry.query(keyword)

            if result.candidates:
                candidate, confidence, multiple = self._select(result, normalized_address, tokens)
                detail = extract_detail_address(tokens, candidate.road_addr_part1)
                if not detail:
                    detail = " ".join(trimmed_parts)
                return CandidateMatch(
                    candidate=candidate,
                    confidence=confidence,
                    multiple_results=multiple,
                    detail_address=detail,
                    strategy="trim",
                )

            trimmed_parts.insert(0, current.pop())

        return None

    def _retry_search(self, normalized_address: str, tokens: List[str]) -> Optional[CandidateMatch]:
        logger.info("[Resolver] Trying retry strategies...")
        for name, transform in RETRY_STRATEGIES:
            transformed = transform(list(tokens))
            if not transformed:
                continue

            keyword = " ".join(transformed)
            logger.info("[Resolver] Retry strategy '%s': %r", name, keyword)
            result = self.registry.query(keyword)
            if not result.candidates:
                continue

            candidate, confidence, multiple = self._select(result, normalized_address, tokens)
            logger.info("[Resolver] Found via retry strategy '%s': %r", name, candidate.road_addr_part1)
            return CandidateMatch(
                candidate=candidate,
                confidence=confidence,
                multiple_results=multiple,
                detail_address=extract_detail_address(tokens, candidate.road_addr_part1),
                strategy=name,
            )
        return None
