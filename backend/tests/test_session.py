from sqlalchemy import inspect
from sqlalchemy.pool import StaticPool

from deliveryaddr.db.session import create_db_engine, create_session_factory, init_db
from deliveryaddr.models.address import AddressLog


def test_memory_engine_shares_one_connection():
    engine = create_db_engine("sqlite://")
    assert isinstance(engine.pool, StaticPool)

    init_db(engine)
    factory = create_session_factory(engine)
    with factory() as db:
        db.add(AddressLog(raw_text="강남구 테헤란로 123", status="valid"))
        db.commit()
    with factory() as db:
        assert db.query(AddressLog).count() == 1
    engine.dispose()


def test_init_db_creates_tables(tmp_path):
    engine = create_db_engine(f"sqlite:///{tmp_path / 'delivery.db'}")
    assert not isinstance(engine.pool, StaticPool)

    init_db(engine)

    tables = set(inspect(engine).get_table_names())
    assert {"address_logs", "address_learning_data"} <= tables
    engine.dispose()
