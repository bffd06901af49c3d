import json
import logging
import re
from datetime import datetime, timezone
from typing import Callable, List, Optional

from rapidfuzz import fuzz
from sqlalchemy import or_
from sqlalchemy.orm import Session

from deliveryaddr.core.config import settings
from deliveryaddr.db.session import SessionLocal
from deliveryaddr.models.learning import AddressLearningData
from deliveryaddr.schemas.address import LearnedCorrection, PatternMatch
from deliveryaddr.schemas.learning import PatternAnalysis, PatternTestResult
from deliveryaddr.utils.building import BuildingClass
from deliveryaddr.utils.content_filter import MEMO_KEYWORDS

logger = logging.getLogger(__name__)

PATTERN_MIN_CONFIDENCE = 0.8
LEARNED_MIN_CONFIDENCE = 0.7
SIMILAR_MIN_OCCURRENCES = 2
NEW_CORRECTION_CONFIDENCE = 0.8
MANUAL_CORRECTION_CONFIDENCE = 0.95
REPEAT_CONFIDENCE_STEP = 0.05
SUCCESS_CONFIDENCE_STEP = 0.02

_PLACEHOLDER = re.compile(r"\$\d")
# '현관비밀번호'는 메모 분리 판정에서 제외
_MEMO = re.compile("(" + "|".join(k for k in MEMO_KEYWORDS if k != "현관비밀번호") + ")")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _type_value(building_type) -> str:
    return building_type.value if isinstance(building_type, BuildingClass) else str(building_type)


def match_and_convert_by_pattern(detail: str, pattern_regex: str, corrected_template: str) -> Optional[str]:
    """
    Apply a stored regex to the detail address.
    "$1".."$n" placeholders in the template are filled from capture groups.
    """
    try:
        match = re.search(pattern_regex, detail)
    except re.error as e:
        logger.warning("[Learning] Invalid pattern %r: %s", pattern_regex, e)
        return None
    if not match:
        return None

    if not _PLACEHOLDER.search(corrected_template):
        return corrected_template

    result = corrected_template
    substituted = False
    for idx, group in enumerate(match.groups(), start=1):
        placeholder = f"${idx}"
        if group and placeholder in result:
            result = result.replace(placeholder, group, 1)
            substituted = True

    if not substituted:
        logger.warning("[Learning] Template has no usable substitution: %r", corrected_template)
        return None
    return result


def infer_correction_type(original: str, corrected: str) -> str:
    if original == corrected:
        return "no_change"

    if _MEMO.search(original) and not _MEMO.search(corrected):
        return "memo_separation"

    if re.match(r"^(\d+)\s*-\s*(\d+)$", original.strip()) and re.search(r"동.*호", corrected):
        return "hyphen_to_unit"

    if re.match(r"^(\d+)\s+(\d+)$", original.strip()) and re.search(r"동.*호", corrected):
        return "space_to_unit"

    if "동" not in original and "동" in corrected:
        return "missing_dong"
    if "호" not in original and "호" in corrected:
        return "missing_ho"

    if re.search(r"지하\s*\d", original) and re.search(r"지하\d", corrected):
        return "floor_space_fix"

    return "general_normalization"


def _analysis_fields(analysis: PatternAnalysis) -> dict:
    """Learning-table columns filled from an AI pattern analysis."""
    return {
        "error_pattern": analysis.error_pattern,
        "problem_description": analysis.problem_description,
        "pattern_regex": analysis.pattern_regex,
        "conversion_template": analysis.conversion_template,
        "solution_description": analysis.solution,
        "similar_patterns": json.dumps(analysis.similar_patterns, ensure_ascii=False),
        "extracted_memo": analysis.extracted_memo,
        "analyzed_at": _now(),
        "ai_model": analysis.ai_model or "unknown",
    }


class AddressLearningService:
    """
    Pattern store + learned-correction store backed by address_learning_data.
    Each call opens its own session so the service is safe to share across
    bulk worker threads.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        similarity_threshold: Optional[float] = None,
    ):
        self.session_factory = session_factory
        self.similarity_threshold = (
            settings.LEARNED_SIMILARITY_THRESHOLD if similarity_threshold is None else similarity_threshold
        )

    # --- Pattern store ---

    def find_by_pattern(self, detail: str, building_type) -> Optional[PatternMatch]:
        with self.session_factory() as db:
            rows = (
                db.query(AddressLearningData)
                .filter(
                    AddressLearningData.pattern_regex.isnot(None),
                    AddressLearningData.building_type == _type_value(building_type),
                    AddressLearningData.confidence_score >= PATTERN_MIN_CONFIDENCE,
                )
                .order_by(AddressLearningData.occurrence_count.desc())
                .limit(100)
                .all()
            )

            for row in rows:
                if not row.pattern_regex:
                    continue
                try:
                    if re.search(row.pattern_regex, detail):
                        logger.info("[Learning] Regex pattern hit: %s", row.error_pattern)
                        return PatternMatch(
                            pattern_regex=row.pattern_regex,
                            corrected_detail=row.conversion_template or row.corrected_detail_address,
                            label=row.error_pattern,
                            confidence=row.confidence_score,
                        )
                except re.error as e:
                    logger.warning("[Learning] Invalid regex (id=%s): %s", row.id, e)
        return None

    # --- Learned-correction store ---

    def find(self, detail: str, building_type) -> Optional[LearnedCorrection]:
        type_value = _type_value(building_type)
        with self.session_factory() as db:
            exact = (
                db.query(AddressLearningData)
                .filter(
                    AddressLearningData.original_detail_address == detail,
                    AddressLearningData.building_type == type_value,
                    AddressLearningData.confidence_score >= LEARNED_MIN_CONFIDENCE,
                )
                .first()
            )
            if exact:
                exact.last_used_at = _now()
                db.commit()
                return LearnedCorrection(
                    corrected=exact.corrected_detail_address,
                    confidence=exact.confidence_score,
                    occurrence_count=exact.occurrence_count or 0,
                )

            candidates = (
                db.query(AddressLearningData)
                .filter(
                    AddressLearningData.building_type == type_value,
                    AddressLearningData.confidence_score >= LEARNED_MIN_CONFIDENCE,
                    AddressLearningData.occurrence_count >= SIMILAR_MIN_OCCURRENCES,
                )
                .order_by(AddressLearningData.occurrence_count.desc())
                .limit(50)
                .all()
            )

            for row in candidates:
                similarity = fuzz.ratio(detail.lower(), row.original_detail_address.lower()) / 100.0
                if similarity >= self.similarity_threshold:
                    logger.info(
                        "[Learning] Similar pattern: %r ~ %r (%.1f%%)",
                        detail, row.original_detail_address, similarity * 100,
                    )
                    row.last_used_at = _now()
                    db.commit()
                    return LearnedCorrection(
                        corrected=row.corrected_detail_address,
                        confidence=similarity * row.confidence_score,
                        occurrence_count=row.occurrence_count or 0,
                    )
        return None

    def save(self, original: str, corrected: str, building_type, correction_type: str) -> None:
        type_value = _type_value(building_type)
        with self.session_factory() as db:
            existing = (
                db.query(AddressLearningData)
                .filter(
                    AddressLearningData.original_detail_address == original,
                    AddressLearningData.building_type == type_value,
                )
                .first()
            )
            if existing:
                if existing.corrected_detail_address == corrected:
                    existing.confidence_score = min(1.0, existing.confidence_score + REPEAT_CONFIDENCE_STEP)
                existing.corrected_detail_address = corrected
                existing.correction_type = correction_type
                existing.occurrence_count = (existing.occurrence_count or 0) + 1
                existing.last_used_at = _now()
                logger.info("[Learning] Updated %r (%s times)", original, existing.occurrence_count)
            else:
                db.add(AddressLearningData(
                    original_detail_address=original,
                    corrected_detail_address=corrected,
                    building_type=type_value,
                    correction_type=correction_type,
                    confidence_score=NEW_CORRECTION_CONFIDENCE,
                    occurrence_count=1,
                    success_count=0,
                    user_confirmed=False,
                ))
                logger.info("[Learning] Saved %r -> %r", original, corrected)
            db.commit()

    def increment_success(self, original: str) -> None:
        with self.session_factory() as db:
            row = (
                db.query(AddressLearningData)
                .filter(AddressLearningData.original_detail_address == original)
                .first()
            )
            if row:
                row.success_count = (row.success_count or 0) + 1
                row.confidence_score = min(1.0, row.confidence_score + SUCCESS_CONFIDENCE_STEP)
                db.commit()

    # --- Admin CRUD ---

    def list_entries(self, page: int = 1, limit: int = 20, search: str = "") -> tuple[List[AddressLearningData], int]:
        with self.session_factory() as db:
            query = db.query(AddressLearningData)
            if search:
                like = f"%{search}%"
                query = query.filter(or_(
                    AddressLearningData.original_detail_address.ilike(like),
                    AddressLearningData.corrected_detail_address.ilike(like),
                    AddressLearningData.error_pattern.ilike(like),
                ))
            total = query.count()
            rows = (
                query.order_by(AddressLearningData.updated_at.desc(), AddressLearningData.id.desc())
                .offset((page - 1) * limit)
                .limit(limit)
                .all()
            )
            db.expunge_all()
            return rows, total

    def create_entry(self, analysis: Optional[PatternAnalysis] = None, **fields) -> AddressLearningData:
        """
        Store a manually confirmed correction. Fields the user left blank are
        filled from `analysis`; the regex and its template are taken as a pair.
        """
        original = fields["original_detail_address"]
        corrected = fields["corrected_detail_address"]
        if analysis is not None:
            ai_fields = _analysis_fields(analysis)
            if fields.get("pattern_regex"):
                ai_fields.pop("pattern_regex")
                ai_fields.pop("conversion_template")
            for key, value in ai_fields.items():
                if not fields.get(key):
                    fields[key] = value

        with self.session_factory() as db:
            row = AddressLearningData(
                correction_type=infer_correction_type(original, corrected),
                confidence_score=MANUAL_CORRECTION_CONFIDENCE,
                occurrence_count=1,
                success_count=0,
                user_confirmed=True,
                **fields,
            )
            if not row.error_pattern:
                row.error_pattern = row.correction_type
            db.add(row)
            db.commit()
            db.refresh(row)
            db.expunge(row)
            return row

    def save_pattern_analysis(
        self, analysis: PatternAnalysis, building_type: str = "general", confirmed: bool = False
    ) -> AddressLearningData:
        """
        Attach an AI analysis to the entry for the same original address,
        or create one. `confirmed` marks rows imported by an admin.
        """
        fields = _analysis_fields(analysis)
        with self.session_factory() as db:
            row = (
                db.query(AddressLearningData)
                .filter(
                    AddressLearningData.original_detail_address == analysis.original_address,
                    AddressLearningData.building_type == building_type,
                )
                .first()
            )
            if row:
                for key, value in fields.items():
                    setattr(row, key, value)
                logger.info("[Learning] Pattern analysis updated for %r: %s", row.original_detail_address, analysis.error_pattern)
            else:
                corrected = analysis.corrected_address or analysis.original_address
                row = AddressLearningData(
                    original_detail_address=analysis.original_address,
                    corrected_detail_address=corrected,
                    building_type=building_type,
                    correction_type=infer_correction_type(analysis.original_address, corrected),
                    confidence_score=MANUAL_CORRECTION_CONFIDENCE if confirmed else analysis.confidence,
                    occurrence_count=1,
                    success_count=0,
                    user_confirmed=confirmed,
                    **fields,
                )
                db.add(row)
                logger.info("[Learning] Pattern analysis saved for %r: %s", analysis.original_address, analysis.error_pattern)
            db.commit()
            db.refresh(row)
            db.expunge(row)
            return row

    def exists(self, original: str, building_type: Optional[str] = None) -> bool:
        with self.session_factory() as db:
            query = db.query(AddressLearningData.id).filter(AddressLearningData.original_detail_address == original)
            if building_type is not None:
                query = query.filter(AddressLearningData.building_type == building_type)
            return query.first() is not None

    def check_pattern(self, detail: str, building_type: str = "general") -> PatternTestResult:
        """Dry-run the pattern store, then the learned store, against one detail address."""
        pattern = self.find_by_pattern(detail, building_type)
        if pattern:
            converted = match_and_convert_by_pattern(detail, pattern.pattern_regex, pattern.corrected_detail)
            if converted:
                return PatternTestResult(
                    matched=True,
                    method="pattern_regex",
                    original=detail,
                    corrected=converted,
                    pattern=pattern.label,
                    confidence=pattern.confidence,
                )

        learned = self.find(detail, building_type)
        if learned:
            return PatternTestResult(
                matched=True,
                method="learned_similarity",
                original=detail,
                corrected=learned.corrected,
                confidence=learned.confidence,
                occurrence_count=learned.occurrence_count,
            )

        return PatternTestResult(
            matched=False,
            original=detail,
            message="매칭되는 패턴이 없습니다. AI 분석을 통해 새 패턴을 학습할 수 있습니다.",
        )

    def stats(self) -> dict:
        with self.session_factory() as db:
            query = db.query(AddressLearningData)
            return {
                "total": query.count(),
                "user_confirmed": query.filter(AddressLearningData.user_confirmed.is_(True)).count(),
                "ai_analyzed": query.filter(AddressLearningData.ai_model.isnot(None)).count(),
                "with_pattern": query.filter(AddressLearningData.pattern_regex.isnot(None)).count(),
            }

    def update_entry(self, entry_id: int, **fields) -> Optional[AddressLearningData]:
        with self.session_factory() as db:
            row = db.get(AddressLearningData, entry_id)
            if row is None:
                return None
            for key, value in fields.items():
                if value is not None:
                    setattr(row, key, value)
            row.user_confirmed = True
            if fields.get("original_detail_address") and fields.get("corrected_detail_address"):
                row.correction_type = infer_correction_type(
                    fields["original_detail_address"], fields["corrected_detail_address"]
                )
            db.commit()
            db.refresh(row)
            db.expunge(row)
            return row

    def delete_entry(self, entry_id: int) -> bool:
        with self.session_factory() as db:
            row = db.get(AddressLearningData, entry_id)
            if row is None:
                return False
            db.delete(row)
            db.commit()
            return True


learning_service = AddressLearningService()
