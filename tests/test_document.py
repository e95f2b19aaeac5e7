from datetime import date

import pytest

from trt_tracker.core.document import (
    default_settings,
    is_legacy_settings,
    migrate_settings,
    parse_document,
    serialize_document,
    validate_import,
)
from trt_tracker.core.errors import MalformedPersistedData
from trt_tracker.core.models import Protocol, TRTDocument
from trt_tracker.core.records import record_injection

LEGACY = {
    "protocol": "E3D",
    "concentration": 250,
    "syringe": {"volume": 0.5, "units": 50},
    "syringeFillAmount": 0.4,
    "startDate": "2024-01-01T08:00:00.000Z",
    "protocolStartDate": "2024-02-01",
    "reminderTime": "21:30",
}

CURRENT = {
    "treatmentStartDate": "2024-01-01",
    "protocols": [{
        "protocol": "E2D",
        "concentration": 200,
        "syringe": {"volume": 1, "units": 100, "deadSpace": 0.05},
        "syringeFillAmount": 0.3,
        "startDate": "2024-01-01",
        "protocolColor": "#f59e0b",
    }],
    "reminderTime": "08:00",
    "enableNotifications": True,
    "notificationPermission": "default",
}


class TestLegacyMigration:

    def test_detects_shape(self):
        assert is_legacy_settings(LEGACY)
        assert not is_legacy_settings(CURRENT)

    def test_becomes_single_entry_history(self):
        settings = migrate_settings(LEGACY)
        assert len(settings.protocols) == 1
        entry = settings.protocols[0]
        assert entry.protocol == Protocol.E3D
        assert entry.concentration_mg_per_ml == 250
        assert entry.syringe.volume_ml == 0.5
        assert entry.syringe.dead_space_ml == 0
        assert entry.start_date == date(2024, 2, 1)
        assert settings.treatment_start_date == date(2024, 1, 1)
        assert settings.reminder_time == "21:30"

    def test_without_protocol_start_uses_start_date(self):
        raw = {k: v for k, v in LEGACY.items() if k != "protocolStartDate"}
        assert migrate_settings(raw).protocols[0].start_date == date(2024, 1, 1)

    def test_only_core_fields_required(self):
        settings = migrate_settings({"protocol": "Weekly", "concentration": 100, "startDate": "2024-03-01"})
        assert settings.protocols[0].syringe.total_units == 100
        assert settings.enable_notifications is True


class TestParseDocument:

    def test_empty_store(self):
        assert parse_document(None) == TRTDocument()
        assert parse_document("garbage") == TRTDocument()

    def test_current_shape(self):
        doc = parse_document({"settings": CURRENT, "records": [{"id": "a", "date": "2024-01-01", "dose": 60}]})
        assert doc.settings.protocols[0].display_color == "#f59e0b"
        assert doc.records[0].dose_mg == 60

    def test_malformed_pieces_are_dropped(self):
        doc = parse_document({
            "settings": {"protocols": []},
            "records": [
                {"id": "a", "date": "2024-01-01", "dose": 60},
                {"id": "b", "date": "not a date", "dose": 60},
                {"date": "2024-01-03"},
            ],
        })
        assert doc.settings is None
        assert [r.id for r in doc.records] == ["a"]

    def test_duplicate_ids_collapse_to_last(self):
        doc = parse_document({"settings": None, "records": [
            {"id": "a", "date": "2024-01-01", "dose": 60},
            {"id": "a", "date": "2024-01-01", "dose": 70},
        ]})
        assert len(doc.records) == 1
        assert doc.records[0].dose_mg == 70

    def test_legacy_settings_loaded(self):
        doc = parse_document({"settings": LEGACY, "records": []})
        assert doc.settings.protocols[0].protocol == Protocol.E3D


class TestValidateImport:

    def test_accepts_current_and_legacy(self):
        assert validate_import({"settings": CURRENT, "records": []}).settings is not None
        assert validate_import({"settings": LEGACY, "records": []}).settings.protocols[0].start_date == date(2024, 2, 1)
        assert validate_import({"settings": None, "records": []}).settings is None

    @pytest.mark.parametrize("raw", [
        [],
        {"records": []},
        {"settings": None},
        {"settings": None, "records": {}},
        {"settings": "x", "records": []},
        {"settings": {"protocols": []}, "records": []},
        {"settings": None, "records": [{"id": "a", "date": "2024-01-01"}]},
    ])
    def test_rejects_malformed(self, raw):
        with pytest.raises(MalformedPersistedData) as exc:
            validate_import(raw)
        assert exc.value.errors

    def test_rejects_duplicate_ids(self):
        record = {"id": "a", "date": "2024-01-01", "dose": 60}
        with pytest.raises(MalformedPersistedData) as exc:
            validate_import({"settings": None, "records": [record, record]})
        assert any("duplicate" in e for e in exc.value.errors)


def test_serialized_document_uses_stored_names():
    doc = TRTDocument(
        settings=default_settings(date(2024, 1, 1)),
        records=[record_injection(date(2024, 1, 1), 60.0, record_id="r1")],
    )
    raw = serialize_document(doc)
    assert raw["records"][0] == {
        "id": "r1", "date": "2024-01-01", "dose": 60.0, "missed": False, "rescheduled": False, "notes": None,
    }
    assert raw["settings"]["protocols"][0]["startDate"] == "2024-01-01"
    assert raw["settings"]["treatmentStartDate"] == "2024-01-01"
    assert parse_document(raw) == doc
