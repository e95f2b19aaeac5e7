import json

import pytest

from trt_tracker.core.database import (
    LEGACY_RECORDS_KEY,
    LEGACY_SETTINGS_KEY,
    SqliteDocumentRepository,
    close_connection,
    init_db,
    kv_get,
    kv_put,
)


@pytest.fixture
def db_path(tmp_path):
    path = tmp_path / "trt.db"
    yield path
    close_connection(path)


def test_first_run_loads_nothing(db_path):
    assert SqliteDocumentRepository(db_path).load() is None


def test_save_then_load(db_path):
    repo = SqliteDocumentRepository(db_path)
    document = {"settings": None, "records": [{"id": "a", "date": "2024-01-01", "dose": 60}]}
    repo.save(document)
    assert repo.load() == document
    repo.save({"settings": None, "records": []})
    assert SqliteDocumentRepository(db_path).load() == {"settings": None, "records": []}


def test_clear(db_path):
    repo = SqliteDocumentRepository(db_path)
    repo.save({"settings": None, "records": []})
    assert repo.clear()
    assert repo.load() is None


def test_corrupt_json_reads_as_empty(db_path):
    repo = SqliteDocumentRepository(db_path, key="trtData")
    kv_put("trtData", "{not json", db_path)
    assert repo.load() is None


def test_split_legacy_keys_are_merged(db_path):
    init_db(db_path)
    settings = {"protocol": "E2D", "concentration": 200, "startDate": "2024-01-01"}
    records = [{"id": "a", "date": "2024-01-01", "dose": 60}]
    kv_put(LEGACY_SETTINGS_KEY, json.dumps(settings), db_path)
    kv_put(LEGACY_RECORDS_KEY, json.dumps(records), db_path)

    repo = SqliteDocumentRepository(db_path)
    assert repo.load() == {"settings": settings, "records": records}
    assert kv_get(LEGACY_SETTINGS_KEY, db_path) is None
    assert kv_get(LEGACY_RECORDS_KEY, db_path) is None


def test_existing_document_wins_over_legacy_keys(db_path):
    repo = SqliteDocumentRepository(db_path)
    repo.save({"settings": None, "records": []})
    kv_put(LEGACY_RECORDS_KEY, json.dumps([{"id": "old"}]), db_path)

    repo = SqliteDocumentRepository(db_path)
    assert repo.load() == {"settings": None, "records": []}
    assert kv_get(LEGACY_RECORDS_KEY, db_path) is None
