from datetime import date

import pytest

from trt_tracker.core.protocol_history import (
    active_protocol_at,
    append_protocol,
    attribute_records,
    current_protocol,
    next_protocol_color,
    protocol_periods,
    replace_current_protocol,
    shift_current_start,
)
from trt_tracker.core.records import record_injection


@pytest.fixture
def history(make_entry):
    return [
        make_entry(protocol="E2D", start=date(2024, 1, 1), color="#f59e0b"),
        make_entry(protocol="E3D", start=date(2024, 2, 1), color="#10b981"),
        make_entry(protocol="Weekly", start=date(2024, 2, 1), color="#3b82f6"),
    ]


class TestActiveProtocolAt:

    def test_most_recent_start_wins(self, history):
        assert active_protocol_at(date(2024, 1, 31), history) is history[0]
        assert active_protocol_at(date(2024, 3, 1), history).protocol.value == "Weekly"

    def test_same_start_goes_to_later_entry(self, history):
        assert active_protocol_at(date(2024, 2, 1), history) is history[2]

    def test_before_every_start_falls_back_to_earliest(self, history, make_entry):
        assert active_protocol_at(date(2023, 6, 1), history) is history[0]
        unordered = [make_entry(start=date(2024, 5, 1)), make_entry(protocol="Daily", start=date(2024, 4, 1))]
        assert active_protocol_at(date(2024, 1, 1), unordered) is unordered[1]

    def test_empty_history(self):
        with pytest.raises(ValueError):
            active_protocol_at(date(2024, 1, 1), [])

    def test_sees_entries_appended_later(self, history, make_entry, make_settings):
        settings = make_settings(*history)
        day = date(2024, 4, 1)
        assert active_protocol_at(day, settings.protocols).protocol.value == "Weekly"
        settings = append_protocol(settings, make_entry(protocol="Daily", start=day))
        assert active_protocol_at(day, settings.protocols).protocol.value == "Daily"


class TestMutations:

    def test_append_keeps_history(self, history, make_entry, make_settings):
        settings = make_settings(*history)
        updated = append_protocol(settings, make_entry(protocol="Daily", start=date(2024, 3, 1)))
        assert len(updated.protocols) == 4
        assert current_protocol(updated).protocol.value == "Daily"
        assert len(settings.protocols) == 3

    def test_replace_current(self, history, make_entry, make_settings):
        updated = replace_current_protocol(make_settings(*history), make_entry(concentration=250))
        assert len(updated.protocols) == 3
        assert current_protocol(updated).concentration_mg_per_ml == 250

    def test_shift_moves_only_current(self, history, make_settings):
        updated = shift_current_start(make_settings(*history), date(2024, 2, 20))
        assert current_protocol(updated).start_date == date(2024, 2, 20)
        assert updated.protocols[0].start_date == date(2024, 1, 1)


def test_protocol_periods_drop_shadowed_entries(history):
    periods = protocol_periods(history)
    assert [(e.protocol.value, s, end) for e, s, end in periods] == [
        ("E2D", date(2024, 1, 1), date(2024, 2, 1)),
        ("Weekly", date(2024, 2, 1), None),
    ]


def test_attribute_records(history):
    records = [record_injection(date(2024, 1, 15), 60), record_injection(date(2024, 2, 15), 60)]
    colors = [entry.display_color for _, entry in attribute_records(records, history)]
    assert colors == ["#f59e0b", "#3b82f6"]


def test_next_protocol_color_cycles(make_settings, make_entry):
    assert next_protocol_color(None) == "#f59e0b"
    assert next_protocol_color(make_settings(make_entry())) == "#10b981"


def test_single_entry_applies_to_any_date(make_entry):
    only = make_entry(start=date(2024, 6, 1))
    for day in (date(2020, 1, 1), date(2024, 6, 1), date(2030, 1, 1)):
        assert active_protocol_at(day, [only]) is only


def test_two_entries(make_entry):
    first, second = make_entry(start=date(2024, 1, 1)), make_entry(start=date(2024, 6, 1))
    assert active_protocol_at(date(2024, 3, 1), [first, second]) is first
    assert active_protocol_at(date(2024, 7, 1), [first, second]) is second
    assert active_protocol_at(date(2023, 1, 1), [first, second]) is first
