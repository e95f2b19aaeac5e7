from datetime import date

import pytest

from trt_tracker.core.errors import InvalidConfiguration
from trt_tracker.core.models import DoseStatus, InjectionRecord, MissedDoseOption
from trt_tracker.core.protocol_history import current_protocol
from trt_tracker.core.records import (
    _week_start,
    apply_missed_dose_resolution,
    chart_points,
    classify,
    reconcile,
    record_for_day,
    record_injection,
    upsert_record,
    weekly_summary,
)

TODAY = date(2024, 1, 28)


def _record(day, dose=100.0, missed=False, record_id=None):
    return record_injection(day, dose, missed=missed, record_id=record_id)


class TestRecordInjection:

    def test_ids_are_unique_and_dated(self):
        a, b = _record(date(2024, 1, 1)), _record(date(2024, 1, 1))
        assert a.id != b.id
        assert a.id.startswith("2024-01-01-")
        assert not a.missed and not a.rescheduled

    def test_upsert_replaces_by_id(self):
        first = _record(date(2024, 1, 1), record_id="r1")
        records = upsert_record([first], _record(date(2024, 1, 1), dose=120, record_id="r1"))
        assert len(records) == 1
        assert records[0].dose_mg == 120

    def test_upsert_appends_new_id(self):
        records = upsert_record([_record(date(2024, 1, 1))], _record(date(2024, 1, 3)))
        assert [r.date for r in records] == [date(2024, 1, 1), date(2024, 1, 3)]

    def test_record_date_truncates_timestamp(self):
        record = InjectionRecord.model_validate(
            {"id": "x", "date": "2024-03-05T22:15:00.000Z", "dose": 60}
        )
        assert record.date == date(2024, 3, 5)


class TestReconcile:

    def test_statuses(self):
        records = [_record(date(2024, 1, 20)), _record(date(2024, 1, 22), missed=True)]
        schedule = [date(2024, 1, 20), date(2024, 1, 22), date(2024, 1, 24), date(2024, 1, 28), date(2024, 1, 30)]
        statuses = [status for _, status, _ in reconcile(schedule, records, TODAY)]
        assert statuses == [
            DoseStatus.COMPLETED,
            DoseStatus.MISSED,
            DoseStatus.PENDING_LOG,
            DoseStatus.UPCOMING,
            DoseStatus.UPCOMING,
        ]

    def test_every_scheduled_day_gets_exactly_one_status(self):
        schedule = [date(2024, 1, d) for d in range(1, 31, 2)]
        result = reconcile(schedule, [_record(date(2024, 1, 5))], TODAY)
        assert [d for d, _, _ in result] == schedule

    def test_matches_by_day_first_record_wins(self):
        records = [_record(date(2024, 1, 5), missed=True), _record(date(2024, 1, 5))]
        assert classify(date(2024, 1, 5), records, TODAY) == DoseStatus.MISSED
        assert record_for_day(date(2024, 1, 5), records) is records[0]


class TestMissedDoseResolution:

    @pytest.mark.parametrize("option", [MissedDoseOption.SKIP, MissedDoseOption.MAINTAIN])
    def test_schedule_untouched(self, option, make_entry, make_settings):
        settings = make_settings(make_entry(start=date(2024, 1, 1)))
        resolved, after = apply_missed_dose_resolution(_record(date(2024, 1, 5)), option, settings)
        assert resolved.missed
        assert not resolved.rescheduled
        assert after == settings

    def test_shift_restarts_day_after(self, make_entry, make_settings):
        settings = make_settings(make_entry(start=date(2024, 1, 1)))
        resolved, after = apply_missed_dose_resolution(
            _record(date(2024, 1, 5)), "shift", settings, notes="travel",
        )
        assert resolved.missed and resolved.rescheduled
        assert resolved.notes == "travel"
        assert current_protocol(after).start_date == date(2024, 1, 6)


class TestWeeklySummary:

    def test_week_starts_on_sunday(self):
        assert _week_start(date(2024, 1, 28)) == date(2024, 1, 28)
        assert _week_start(date(2024, 1, 24)) == date(2024, 1, 21)

    def test_totals_and_compliance(self):
        records = [
            _record(date(2024, 1, 22)),
            _record(date(2024, 1, 24)),
            _record(date(2024, 1, 26), missed=True),
            _record(date(2023, 11, 1)),
        ]
        summary = weekly_summary(records, TODAY)
        assert summary["weeks"] == [{
            "week_start": date(2024, 1, 21),
            "total_mg": 200.0,
            "injection_count": 2,
            "missed_count": 1,
            "average_per_injection": 100.0,
        }]
        overall = summary["overall"]
        assert overall["total_injections"] == 2
        assert overall["total_missed"] == 1
        assert overall["compliance_rate"] == pytest.approx(200 / 3)

    def test_nothing_logged_is_full_compliance(self):
        assert weekly_summary([], TODAY)["overall"]["compliance_rate"] == 100.0


def test_chart_points_last_completed_oldest_first(make_entry):
    protocols = [make_entry(start=date(2024, 1, 1), color="#10b981")]
    records = [
        _record(date(2024, 1, 9)),
        _record(date(2024, 1, 3)),
        _record(date(2024, 1, 5), missed=True),
        _record(date(2024, 1, 7)),
    ]
    points = chart_points(records, protocols, limit=2)
    assert [p["date"] for p in points] == [date(2024, 1, 7), date(2024, 1, 9)]
    assert all(p["color"] == "#10b981" for p in points)


def test_logging_a_pending_day_completes_it_once():
    day = date(2024, 1, 20)
    assert classify(day, [], TODAY) == DoseStatus.PENDING_LOG
    record = _record(day, record_id="r1")
    records = upsert_record([], record)
    records = upsert_record(records, record)
    assert len(records) == 1
    assert classify(day, records, TODAY) == DoseStatus.COMPLETED


def test_shift_refused_before_current_period(make_entry, make_settings):
    settings = make_settings(
        make_entry(protocol="E2D", start=date(2024, 1, 1)),
        make_entry(protocol="Weekly", start=date(2024, 2, 1)),
    )
    for day in (date(2023, 12, 10), date(2024, 1, 15)):
        with pytest.raises(InvalidConfiguration):
            apply_missed_dose_resolution(_record(day), MissedDoseOption.SHIFT, settings)
    resolved, after = apply_missed_dose_resolution(_record(date(2024, 1, 15)), MissedDoseOption.SKIP, settings)
    assert resolved.missed
    assert after == settings
