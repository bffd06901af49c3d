import logging
import math
import time
from functools import lru_cache
from typing import List, Optional

import pandas as pd
from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, HTTPException, UploadFile
from sqlalchemy.orm import Session

from deliveryaddr.core.config import settings
from deliveryaddr.db.session import get_db
from deliveryaddr.models.address import AddressLog
from deliveryaddr.schemas.address import (
    AddressCreate,
    AddressResponse,
    ValidateAddressesRequest,
    ValidateAddressesResponse,
)
from deliveryaddr.schemas.learning import (
    LearningCreate,
    LearningFeedback,
    LearningPage,
    LearningResponse,
    LearningStats,
    LearningUpdate,
    PatternAnalyzeRequest,
    PatternTestRequest,
    PatternTestResult,
)
from deliveryaddr.services.address_resolver import AddressResolver, build_default_resolver
from deliveryaddr.services.bulk_service import (
    BulkJobManager,
    bulk_job_manager,
    find_address_column,
    find_phone_column,
    run_csv_job,
    validate_batch,
)
from deliveryaddr.services.juso_service import JusoAPIError, JusoConfigError, JusoService, juso_service
from deliveryaddr.services.learning_service import AddressLearningService, learning_service
from deliveryaddr.services.llm_service import LLMService, LLMServiceError, llm_service
from deliveryaddr.utils.csv_handler import read_csv_file, read_table_file

logger = logging.getLogger(__name__)

router = APIRouter()

HEALTH_CHECK_ADDRESS = "서울특별시 강남구 테헤란로 152"
LEARNING_PREVIEW_ROWS = 5


@lru_cache
def get_resolver() -> AddressResolver:
    return build_default_resolver()


def get_registry() -> JusoService:
    return juso_service


def get_learning_service() -> AddressLearningService:
    return learning_service


def get_job_manager() -> BulkJobManager:
    return bulk_job_manager


def get_llm_service() -> LLMService:
    return llm_service


@router.post("/validate", response_model=ValidateAddressesResponse)
def validate_addresses(
    request: ValidateAddressesRequest,
    resolver: AddressResolver = Depends(get_resolver),
):
    """
    Validate Addresses (주소 일괄 검증)
    - Items are processed in small concurrent batches.
    """
    if not request.addresses:
        raise HTTPException(status_code=400, detail="주소 데이터가 필요합니다")
    return validate_batch(resolver, request.addresses)


@router.post("/resolve", response_model=AddressResponse)
def resolve_address(
    input_data: AddressCreate,
    db: Session = Depends(get_db),
    resolver: AddressResolver = Depends(get_resolver),
):
    """
    Resolve Address (주소 검증 요청)
    - Receives a raw string.
    - Runs it through the resolver.
    - Saves the log to DB.
    """
    result = resolver.resolve(input_data.raw_text)

    db_obj = AddressLog(
        raw_text=input_data.raw_text,
        standard_address=result.standard_address,
        detail_address=result.detail_address,
        normalized_detail_address=result.normalized_detail_address,
        zip_no=result.zip_code,
        buld_nm=result.building_name,
        status=result.status.value,
        reason_code=result.reason_code,
        warning_message=result.warning_message,
        error_message=result.error_message,
    )
    db.add(db_obj)
    db.commit()
    db.refresh(db_obj)

    return db_obj


@router.get("/history", response_model=List[AddressResponse])
def read_history(skip: int = 0, limit: int = 100, db: Session = Depends(get_db)):
    """
    Get History (이력 조회)
    """
    logs = db.query(AddressLog).order_by(AddressLog.id.desc()).offset(skip).limit(limit).all()
    return logs


@router.get("/search")
def search_address_candidates(query: str, registry: JusoService = Depends(get_registry)):
    """
    Search Address Candidates (주소 후보 검색)
    - Returns the raw registry candidates for user selection.
    """
    try:
        result = registry.query(query)
    except JusoConfigError:
        raise HTTPException(status_code=503, detail="주소 검증 API 키가 설정되지 않았습니다")
    except JusoAPIError as e:
        raise HTTPException(status_code=502, detail=f"API 호출 실패: {e}")

    return {
        "query": query,
        "count": result.total_count,
        "candidates": [c.model_dump() for c in result.candidates],
    }


@router.get("/health")
def health_check(registry: JusoService = Depends(get_registry)):
    """Key configured / AI enabled / registry reachable"""
    status = {
        "api_key_configured": registry.is_configured,
        "ai_enabled": settings.ENABLE_AI_ADDRESS_NORMALIZATION,
        "registry_reachable": False,
    }
    if not registry.is_configured:
        return {**status, "message": "JUSO_API_KEY가 설정되지 않았습니다"}

    try:
        result = registry.query(HEALTH_CHECK_ADDRESS)
    except JusoAPIError as e:
        logger.warning("[Health] Registry check failed: %s", e)
        return {**status, "message": str(e)}

    return {**status, "registry_reachable": True, "check_result_count": result.total_count}


@router.post("/bulk-upload")
async def bulk_upload(
    background_tasks: BackgroundTasks,
    file: UploadFile = File(...),
    resolver: AddressResolver = Depends(get_resolver),
    manager: BulkJobManager = Depends(get_job_manager),
):
    """
    Bulk Validate from CSV (Asynchronous)
    - Returns job_id immediately.
    """
    try:
        df = read_csv_file(file)
    except Exception as e:
        raise HTTPException(status_code=400, detail=f"Invalid CSV file: {str(e)}")

    if df.empty or len(df.columns) == 0:
        raise HTTPException(status_code=400, detail="CSV 파일에 데이터가 없습니다.")

    if len(df) > settings.MAX_BULK_ROWS:
        raise HTTPException(
            status_code=400,
            detail=f"CSV 파일이 너무 큽니다. 최대 {settings.MAX_BULK_ROWS:,}건까지 처리 가능합니다."
        )

    target_col = find_address_column(df)
    phone_col = find_phone_column(df)
    job_id = manager.create_job(
        total_rows=len(df),
        filename=file.filename or "upload.csv",
        address_column=target_col,
        phone_column=phone_col,
    )
    background_tasks.add_task(run_csv_job, job_id, df, target_col, resolver, manager, phone_col)

    return {
        "job_id": job_id,
        "address_column": target_col,
        "phone_column": phone_col,
        "message": "Bulk processing started.",
    }


@router.get("/bulk-status/{job_id}")
async def get_bulk_status(job_id: str, manager: BulkJobManager = Depends(get_job_manager)):
    """Get bulk processing status for a specific job"""
    status = manager.status(job_id)
    if status is None:
        raise HTTPException(status_code=404, detail="Job not found")
    # results_data is filled once is_running is False
    return status


@router.post("/bulk-cancel/{job_id}")
async def cancel_bulk_processing(job_id: str, manager: BulkJobManager = Depends(get_job_manager)):
    """Cancel ongoing bulk processing for a specific job"""
    job = manager.get_job(job_id)
    if not job:
        return {"success": False, "message": "Job을 찾을 수 없습니다."}

    if not job["is_running"]:
        return {"success": False, "message": "현재 진행 중인 처리가 없습니다."}

    manager.cancel_job(job_id)

    return {
        "success": True,
        "message": f"중단 요청됨. 현재 진행: {job['current_row']}/{job['total_rows']}건"
    }


# --- Learning data (학습 데이터 관리) ---

@router.get("/learning", response_model=LearningPage)
def list_learning(
    page: int = 1,
    limit: int = 20,
    search: str = "",
    service: AddressLearningService = Depends(get_learning_service),
):
    page = max(page, 1)
    limit = min(max(limit, 1), 100)
    rows, total = service.list_entries(page=page, limit=limit, search=search)
    return LearningPage(
        page=page,
        limit=limit,
        total=total,
        total_pages=math.ceil(total / limit) if total else 0,
        data=[LearningResponse.model_validate(r) for r in rows],
    )


@router.post("/learning", response_model=LearningResponse, status_code=201)
def create_learning(
    payload: LearningCreate,
    service: AddressLearningService = Depends(get_learning_service),
    llm: LLMService = Depends(get_llm_service),
):
    if not payload.original_detail_address.strip() or not payload.corrected_detail_address.strip():
        raise HTTPException(status_code=400, detail="원본 주소와 수정 주소는 필수입니다")

    analysis = None
    if payload.auto_analyze and llm.enabled:
        # AI 분석 실패는 등록을 막지 않음
        try:
            analysis = llm.analyze_pattern(payload.original_detail_address, payload.building_type)
        except LLMServiceError as e:
            logger.warning("[Learning] Auto analysis failed for %r: %s", payload.original_detail_address, e)

    return service.create_entry(analysis=analysis, **payload.model_dump(exclude={"auto_analyze"}))


@router.post("/learning/analyze")
def analyze_learning(
    payload: PatternAnalyzeRequest,
    service: AddressLearningService = Depends(get_learning_service),
    llm: LLMService = Depends(get_llm_service),
):
    """Run AI pattern analysis on one faulty detail address and store the result."""
    if not payload.original_detail_address.strip():
        raise HTTPException(status_code=400, detail="분석할 주소가 필요합니다")
    if not llm.enabled:
        raise HTTPException(status_code=400, detail="AI 기능이 활성화되지 않았습니다")

    try:
        analysis = llm.analyze_pattern(payload.original_detail_address.strip(), payload.building_type)
    except LLMServiceError as e:
        logger.warning("[Learning] Analysis failed: %s", e)
        raise HTTPException(status_code=502, detail="AI 분석에 실패했습니다")

    row = service.save_pattern_analysis(analysis, building_type=payload.building_type)
    return {
        "success": True,
        "message": "AI 분석이 완료되었습니다",
        "analysis": analysis.model_dump(),
        "entry": LearningResponse.model_validate(row),
    }


@router.post("/learning/test", response_model=PatternTestResult)
def try_learning_pattern(
    payload: PatternTestRequest,
    service: AddressLearningService = Depends(get_learning_service),
):
    """Dry-run the learned patterns against a detail address (DB rows are not changed)."""
    address = payload.test_address.strip()
    if not address:
        raise HTTPException(status_code=400, detail="테스트할 주소가 필요합니다")
    return service.check_pattern(address, payload.building_type or "general")


@router.get("/learning/stats", response_model=LearningStats)
def learning_stats(
    service: AddressLearningService = Depends(get_learning_service),
    llm: LLMService = Depends(get_llm_service),
):
    return LearningStats(**service.stats(), ai_enabled=llm.enabled)


def _read_learning_upload(file: UploadFile) -> pd.DataFrame:
    try:
        df = read_table_file(file)
    except Exception as e:
        raise HTTPException(status_code=400, detail=f"파일을 읽을 수 없습니다: {e}")
    if df.empty or len(df.columns) == 0:
        raise HTTPException(status_code=400, detail="빈 파일입니다")
    return df


@router.post("/learning/upload/preview")
def preview_learning_upload(file: UploadFile = File(...)):
    """Column list and the first rows of a CSV/Excel file of faulty addresses."""
    df = _read_learning_upload(file)
    sample = df.head(LEARNING_PREVIEW_ROWS)
    return {
        "success": True,
        "columns": [{"index": i, "name": str(name)} for i, name in enumerate(df.columns)],
        # 헤더가 1행이므로 데이터는 2행부터
        "sample_data": [{"_row_index": i + 2, **row} for i, row in enumerate(sample.to_dict(orient="records"))],
        "total_rows": len(df),
        "suggested_column": find_address_column(df),
    }


@router.post("/learning/upload/process")
def process_learning_upload(
    file: UploadFile = File(...),
    address_column: int = Form(...),
    building_type: str = Form("apartment"),
    service: AddressLearningService = Depends(get_learning_service),
    llm: LLMService = Depends(get_llm_service),
):
    """
    Learn from a file of faulty detail addresses (오류주소 일괄 학습)
    - Each new address is analyzed by the LLM and stored as a confirmed pattern.
    - Short or already-learned addresses are skipped.
    """
    if not llm.enabled:
        raise HTTPException(status_code=400, detail="AI 기능이 비활성화되어 있습니다")

    df = _read_learning_upload(file)
    if not 0 <= address_column < len(df.columns):
        raise HTTPException(status_code=400, detail="주소 컬럼을 선택해주세요")
    if len(df) > settings.MAX_BULK_ROWS:
        raise HTTPException(status_code=400, detail=f"최대 {settings.MAX_BULK_ROWS:,}건까지 처리 가능합니다.")

    results = []
    summary = {"total": len(df), "success": 0, "skipped": 0, "error": 0}

    def record(row_index: int, address: str, status: str, message: str, pattern: Optional[str] = None):
        summary[status] += 1
        results.append({
            "row_index": row_index,
            "original_address": address,
            "status": status,
            "message": message,
            "pattern": pattern,
        })

    for i, value in enumerate(df.iloc[:, address_column].tolist()):
        row_index = i + 2
        address = str(value).strip()
        if len(address) < 3:
            record(row_index, address or "(빈 값)", "skipped", "주소가 너무 짧거나 비어있음")
            continue
        if service.exists(address):
            record(row_index, address, "skipped", "이미 학습된 주소")
            continue

        try:
            analysis = llm.analyze_pattern(address, building_type)
        except LLMServiceError as e:
            logger.warning("[Learning] Row %s analysis failed: %s", row_index, e)
            record(row_index, address, "error", str(e))
            continue

        if not analysis.pattern_regex and analysis.corrected_address == address:
            record(row_index, address, "skipped", "AI가 오류 패턴을 감지하지 못함 (정상 주소일 수 있음)")
        else:
            service.save_pattern_analysis(analysis, building_type=building_type, confirmed=True)
            record(row_index, address, "success", analysis.problem_description or "", analysis.error_pattern)

        if (i + 1) % settings.BATCH_SIZE == 0 and settings.BATCH_PAUSE_SECONDS > 0:
            time.sleep(settings.BATCH_PAUSE_SECONDS)

    logger.info("[Learning] Upload processed: %s", summary)
    return {
        "success": True,
        "message": f"{summary['success']}개 학습 완료, {summary['skipped']}개 건너뜀, {summary['error']}개 오류",
        "summary": summary,
        "results": results,
    }


@router.put("/learning/{entry_id}", response_model=LearningResponse)
def update_learning(
    entry_id: int,
    payload: LearningUpdate,
    service: AddressLearningService = Depends(get_learning_service),
):
    row = service.update_entry(entry_id, **payload.model_dump(exclude_unset=True))
    if row is None:
        raise HTTPException(status_code=404, detail="학습 데이터를 찾을 수 없습니다")
    return row


@router.delete("/learning/{entry_id}")
def delete_learning(
    entry_id: int,
    service: AddressLearningService = Depends(get_learning_service),
):
    if not service.delete_entry(entry_id):
        raise HTTPException(status_code=404, detail="학습 데이터를 찾을 수 없습니다")
    return {"success": True, "message": "삭제되었습니다"}


@router.post("/learning/feedback")
def learning_feedback(
    payload: LearningFeedback,
    service: AddressLearningService = Depends(get_learning_service),
):
    """User accepted a learned correction: bump its success count and confidence."""
    service.increment_success(payload.original_detail_address)
    return {"success": True}
