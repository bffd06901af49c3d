import pandas as pd

from conftest import FakeRegistry, make_candidate
from deliveryaddr.schemas.address import AddressStatus, AddressValidationItem
from deliveryaddr.services.address_resolver import AddressResolver
from deliveryaddr.services.bulk_service import (
    BulkJobManager,
    find_address_column,
    find_phone_column,
    run_csv_job,
    validate_batch,
)


def test_validate_batch_counts_and_order(resolver):
    items = [
        AddressValidationItem(row_index=0, address="강남구 테헤란로 123 101동 505", phone="01012345678"),
        AddressValidationItem(row_index=1, address="강남구 테헤란로 123"),
        AddressValidationItem(row_index=2, address=""),
        AddressValidationItem(row_index=3, address="강남구 테헤란로 123 3-402"),
    ]

    response = validate_batch(resolver, items, batch_size=2, pause_seconds=0)

    assert [r.row_index for r in response.results] == [0, 1, 2, 3]
    assert response.valid_count == 2
    assert response.warning_count == 1
    assert response.invalid_count == 1
    assert response.results[0].formatted_phone == "010-1234-5678"
    assert response.results[0].phone_modified is True
    assert response.results[1].formatted_phone is None


def test_remote_and_length_flags():
    jeju = make_candidate(road_addr_part1="제주특별자치도 제주시 첨단로 242", rn="첨단로", sgg_nm="제주시")
    resolver = AddressResolver(FakeRegistry({"제주시 첨단로 242": [jeju]}))
    items = [AddressValidationItem(row_index=0, address="제주시 첨단로 242 본관 연구개발센터")]

    row = validate_batch(resolver, items, pause_seconds=0, max_length=20).results[0]

    assert row.status == AddressStatus.VALID
    assert row.is_island_remote
    assert row.is_length_exceeded
    assert row.warning_message.startswith("주소 길이 초과 (")
    assert "> 20자" in row.warning_message


def test_find_address_column():
    assert find_address_column(pd.DataFrame({"name": ["a"], "주소": ["b"]})) == "주소"
    assert find_address_column(pd.DataFrame({"Address": ["a"]})) == "Address"
    assert find_address_column(pd.DataFrame({"col1": ["a"], "col2": ["b"]})) == "col1"


def test_job_manager_lifecycle():
    manager = BulkJobManager()
    job_id = manager.create_job(total_rows=3, filename="a.csv")

    assert manager.get_job(job_id)["is_running"]
    assert manager.cancel_job(job_id)
    assert manager.get_job(job_id)["is_cancelled"]
    assert not manager.cancel_job("missing")

    manager.finish_job(job_id, results={"count": 0})
    assert not manager.get_job(job_id)["is_running"]
    assert manager.get_job(job_id)["results"] == {"count": 0}


def test_run_csv_job_annotates_rows(resolver):
    manager = BulkJobManager()
    df = pd.DataFrame({"name": ["홍길동", "김철수"], "address": ["강남구 테헤란로 123 101동 505", "x"]})
    job_id = manager.create_job(total_rows=len(df), filename="orders.csv")

    run_csv_job(job_id, df, "address", resolver, manager)

    job = manager.get_job(job_id)
    assert not job["is_running"]
    assert job["current_row"] == 2
    results = job["results"]
    assert results["count"] == 2
    assert results["filename"] == "validated_orders.csv"
    assert results["results"][0]["status"] == "valid"
    assert results["results"][0]["detail_address"] == "101동 505호"
    assert results["results"][1]["reason_code"] == "E_ADDRESS_TOO_SHORT"
    assert results["csv_content"].startswith("\ufeffname,address,status")


def test_run_csv_job_stops_when_cancelled(resolver):
    manager = BulkJobManager()
    df = pd.DataFrame({"address": ["강남구 테헤란로 123 101동 505"] * 3})
    job_id = manager.create_job(total_rows=3)
    manager.cancel_job(job_id)

    run_csv_job(job_id, df, "address", resolver, manager)

    job = manager.get_job(job_id)
    assert not job["is_running"]
    assert job["results"]["count"] == 0


def test_unexpected_registry_error_keeps_sibling_rows():
    registry = FakeRegistry(error=AttributeError("'list' object has no attribute 'get'"))
    items = [
        AddressValidationItem(row_index=i, address=f"강남구 테헤란로 {100 + i}")
        for i in range(3)
    ]

    response = validate_batch(AddressResolver(registry), items, pause_seconds=0)

    assert len(response.results) == 3
    assert response.invalid_count == 3
    assert {r.reason_code for r in response.results} == {"E_API_CALL_FAILED"}


def test_find_phone_column():
    assert find_phone_column(pd.DataFrame({"주소": ["a"], "연락처": ["b"]})) == "연락처"
    assert find_phone_column(pd.DataFrame({"Phone": ["a"]})) == "Phone"
    assert find_phone_column(pd.DataFrame({"주소": ["a"]})) is None


def test_job_status_reports_row_counts(resolver):
    manager = BulkJobManager()
    df = pd.DataFrame({
        "주소": ["강남구 테헤란로 123 101동 505", "강남구 테헤란로 123", "x"],
        "연락처": ["01012345678", "010-9876-5432", ""],
    })
    job_id = manager.create_job(total_rows=len(df), filename="orders.csv", address_column="주소", phone_column="연락처")

    run_csv_job(job_id, df, "주소", resolver, manager, phone_col="연락처")

    status = manager.status(job_id)
    assert status["progress_percent"] == 100.0
    assert status["address_column"] == "주소"
    assert status["phone_column"] == "연락처"
    assert status["valid_count"] == 1
    assert status["warning_count"] == 1
    assert status["invalid_count"] == 1
    assert status["phone_modified_count"] == 1
    assert status["island_remote_count"] == 0
    assert status["results_data"]["results"][0]["formatted_phone"] == "010-1234-5678"
    assert status["results_data"]["results"][2]["formatted_phone"] == ""


def test_job_status_unknown_or_expired():
    manager = BulkJobManager(job_ttl=0)
    assert manager.status("missing") is None

    old = manager.create_job(total_rows=1)
    manager.jobs[old]["created_at"] -= 10
    manager.create_job(total_rows=1)
    assert manager.status(old) is None
