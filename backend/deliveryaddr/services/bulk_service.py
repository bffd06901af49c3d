import logging
import threading
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional

import pandas as pd

from deliveryaddr.core.config import settings
from deliveryaddr.schemas.address import (
    AddressStatus,
    AddressValidationItem,
    AddressValidationRow,
    ValidateAddressesResponse,
)
from deliveryaddr.services.address_resolver import AddressResolver
from deliveryaddr.utils.csv_handler import df_to_csv_text
from deliveryaddr.utils.delivery import format_phone_number, is_island_remote_area, is_length_exceeded

logger = logging.getLogger(__name__)

ADDRESS_COLUMN_CANDIDATES = ['address', 'addr', 'juso', '주소', 'raw_text']
PHONE_COLUMN_CANDIDATES = ['phone', 'tel', 'mobile', '전화번호', '연락처', '휴대폰']


def validate_item(resolver: AddressResolver, item: AddressValidationItem, max_length: int) -> AddressValidationRow:
    result = resolver.resolve(item.address)

    island_remote = is_island_remote_area(result.standard_address) if result.standard_address else False
    length_exceeded = is_length_exceeded(result.full_address, max_length) if result.full_address else False

    warnings = []
    if result.warning_message:
        warnings.append(result.warning_message)
    if length_exceeded:
        warnings.append(f"주소 길이 초과 ({len(result.full_address)}자 > {max_length}자)")

    formatted_phone, phone_modified = format_phone_number(item.phone) if item.phone else (None, None)

    return AddressValidationRow(
        row_index=item.row_index,
        original_address=item.address,
        status=result.status,
        standard_address=result.standard_address,
        detail_address=result.detail_address,
        normalized_detail_address=result.normalized_detail_address,
        full_address=result.full_address,
        zip_code=result.zip_code,
        building_name=result.building_name,
        warning_message=" / ".join(warnings) if warnings else None,
        error_message=result.error_message,
        reason_code=result.reason_code,
        is_island_remote=island_remote,
        is_length_exceeded=length_exceeded,
        original_phone=item.phone,
        formatted_phone=formatted_phone,
        phone_modified=phone_modified,
    )


def validate_batch(
    resolver: AddressResolver,
    items: List[AddressValidationItem],
    batch_size: Optional[int] = None,
    pause_seconds: Optional[float] = None,
    max_length: Optional[int] = None,
) -> ValidateAddressesResponse:
    """
    Validate items in batches of `batch_size` run concurrently, pausing
    between batches so the Juso API is not flooded.
    """
    batch_size = batch_size or settings.BATCH_SIZE
    pause_seconds = settings.BATCH_PAUSE_SECONDS if pause_seconds is None else pause_seconds
    max_length = max_length or settings.MAX_ADDRESS_LENGTH

    response = ValidateAddressesResponse()
    with ThreadPoolExecutor(max_workers=batch_size) as pool:
        for start in range(0, len(items), batch_size):
            batch = items[start:start + batch_size]
            rows = list(pool.map(lambda item: validate_item(resolver, item, max_length), batch))
            response.results.extend(rows)

            if start + batch_size < len(items) and pause_seconds > 0:
                time.sleep(pause_seconds)

    for row in response.results:
        if row.status == AddressStatus.VALID:
            response.valid_count += 1
        elif row.status == AddressStatus.WARNING:
            response.warning_count += 1
        else:
            response.invalid_count += 1
        if row.is_island_remote:
            response.island_remote_count += 1
        if row.is_length_exceeded:
            response.length_exceeded_count += 1

    logger.info(
        "[Bulk] %s addresses: valid=%s warning=%s invalid=%s",
        len(items), response.valid_count, response.warning_count, response.invalid_count,
    )
    return response


def find_address_column(df: pd.DataFrame) -> str:
    for col in df.columns:
        if str(col).lower() in ADDRESS_COLUMN_CANDIDATES:
            return col
    return df.columns[0]


def find_phone_column(df: pd.DataFrame) -> Optional[str]:
    for col in df.columns:
        if str(col).lower() in PHONE_COLUMN_CANDIDATES:
            return col
    return None


ROW_COUNT_KEYS = ("valid", "warning", "invalid", "island_remote", "length_exceeded", "phone_modified")


class BulkJobManager:
    """
    In-memory CSV validation jobs, keyed by a short job id.
    Row counts are updated as the worker goes so /bulk-status can report
    them before the job finishes. Jobs expire after `job_ttl` seconds.
    """

    def __init__(self, job_ttl: int = 3600):
        self.jobs = {}  # {job_id: state_dict}
        self.lock = threading.Lock()
        self.job_ttl = job_ttl

    def create_job(
        self,
        total_rows: int = 0,
        filename: str = "",
        address_column: Optional[str] = None,
        phone_column: Optional[str] = None,
    ) -> str:
        job_id = str(uuid.uuid4())[:8]
        with self.lock:
            self._cleanup_old_jobs()
            self.jobs[job_id] = {
                "is_running": True,
                "is_cancelled": False,
                "current_row": 0,
                "total_rows": total_rows,
                "filename": filename,
                "address_column": address_column,
                "phone_column": phone_column,
                "counts": dict.fromkeys(ROW_COUNT_KEYS, 0),
                "created_at": time.time(),
                "results": None,  # 완료 후 결과 데이터
            }
        return job_id

    def get_job(self, job_id: str) -> dict | None:
        return self.jobs.get(job_id)

    def record_row(self, job_id: str, row: AddressValidationRow) -> None:
        """Count one processed row against its job."""
        with self.lock:
            job = self.jobs.get(job_id)
            if job is None:
                return
            counts = job["counts"]
            job["current_row"] += 1
            counts[row.status.value] += 1
            if row.is_island_remote:
                counts["island_remote"] += 1
            if row.is_length_exceeded:
                counts["length_exceeded"] += 1
            if row.phone_modified:
                counts["phone_modified"] += 1

    def cancel_job(self, job_id: str) -> bool:
        with self.lock:
            if job_id in self.jobs:
                self.jobs[job_id]["is_cancelled"] = True
                return True
            return False

    def finish_job(self, job_id: str, results=None):
        with self.lock:
            if job_id in self.jobs:
                self.jobs[job_id]["is_running"] = False
                if results is not None:
                    self.jobs[job_id]["results"] = results

    def status(self, job_id: str) -> dict | None:
        """Snapshot for the status endpoint; None for unknown or expired jobs."""
        with self.lock:
            job = self.jobs.get(job_id)
            if job is None:
                return None
            total = job["total_rows"]
            return {
                "is_running": job["is_running"],
                "is_cancelled": job["is_cancelled"],
                "current_row": job["current_row"],
                "total_rows": total,
                "progress_percent": round(job["current_row"] / total * 100, 1) if total > 0 else 0,
                "address_column": job["address_column"],
                "phone_column": job["phone_column"],
                **{f"{key}_count": value for key, value in job["counts"].items()},
                "results_data": job["results"],
            }

    def _cleanup_old_jobs(self):
        now = time.time()
        expired = [jid for jid, state in self.jobs.items()
                   if now - state.get("created_at", 0) > self.job_ttl]
        for jid in expired:
            del self.jobs[jid]


bulk_job_manager = BulkJobManager()


def run_csv_job(
    job_id: str,
    df: pd.DataFrame,
    target_col: str,
    resolver: AddressResolver,
    manager: BulkJobManager = bulk_job_manager,
    phone_col: Optional[str] = None,
):
    """Background worker: resolve every row and attach the results as new columns."""
    rows = []
    try:
        max_length = settings.MAX_ADDRESS_LENGTH
        for idx, (_, row) in enumerate(df.iterrows()):
            job = manager.get_job(job_id)
            if not job or job.get("is_cancelled"):
                break

            phone = None
            if phone_col and pd.notna(row[phone_col]):
                phone = str(row[phone_col]).strip() or None
            item = AddressValidationItem(row_index=idx, address=str(row[target_col]), phone=phone)
            res = validate_item(resolver, item, max_length)
            manager.record_row(job_id, res)

            annotated = {
                "status": res.status.value,
                "standard_address": res.standard_address,
                "detail_address": res.normalized_detail_address or res.detail_address,
                "zip_code": res.zip_code,
                "building_name": res.building_name,
                "reason_code": res.reason_code,
                "message": res.warning_message or res.error_message or "",
            }
            if phone_col:
                annotated["formatted_phone"] = res.formatted_phone or ""
            rows.append(annotated)

        result_df = pd.DataFrame(rows)
        final_df = pd.concat([df.iloc[:len(rows)].reset_index(drop=True), result_df], axis=1)
        data_list = final_df.fillna("").to_dict(orient="records")

        manager.finish_job(job_id, results={
            "count": len(data_list),
            "results": data_list,
            "csv_content": df_to_csv_text(final_df),
            "filename": f"validated_{(manager.get_job(job_id) or {}).get('filename', '')}",
        })
    except Exception:
        logger.exception("[Bulk] Background job %s failed", job_id)
        manager.finish_job(job_id)
