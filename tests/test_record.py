"""Tests for Record: correction requests, data access, listeners."""

from __future__ import annotations

import copy
from unittest.mock import patch

from corrigible.observability.events import RecordDataChanged
from corrigible.record import Record
from corrigible.types import Slot

K, X, N, S = Slot.KEPT, Slot.EXCLUDED, Slot.NOT_EVALUATED, Slot.SYNTHESIZED


class TestRecordBasics:
    def test_generated_id(self, registry):
        record = Record(registry)
        assert len(record.id) == 12
        assert record.id != Record(registry).id

    def test_explicit_id_and_repr(self, school):
        assert school.id == "school-1"
        school.get_data("offer")
        assert repr(school) == "Record(id='school-1', corrected=['offer'])"

    def test_get_data_wraps_the_raw_list(self, school):
        offer = school.get_data("offer")
        assert offer.elements is school.data["offer"]
        assert offer.owner is school
        assert school.visible_count("offer") == 4

    def test_apply_reports_change(self, school):
        assert school.apply("night") is True
        assert school.apply("night") is False
        assert school.is_applied("night")
        assert school.visible_count("offer") == 2

    def test_unapply_reports_change(self, school):
        assert school.unapply("night") is False
        school.apply("night")
        assert school.unapply("night") is True
        assert not school.is_applied("night")

    def test_is_applied_for_unregistered_name(self, school):
        assert school.is_applied("nope") is False

    def test_correction_status(self, school):
        school.apply("night")
        school.apply("language", {"languages": ["en"]})
        status = school.correction_status()
        assert status.manual == {"night": None, "language": {"languages": ["en"]}}
        assert status.active == {"night", "language", "positions"}


class TestSynthesisOnRecord:
    def test_phone_vacancies_reads_owner_data(self, school):
        school.apply("phone_vacancies")
        assignments = school.get_data("assignments")
        assert [a["position"] for a in assignments] == [
            "0590107", "0591227", "1190011", "0590107", "1190011",
        ]
        assert assignments.vector("phone_vacancies") == [N, N, N, S, S]
        assert school.visible_count("assignments") == 5

    def test_filter_sees_synthesized_assignments(self, school):
        school.apply("phoned")
        assert school.visible_count("assignments") == 1
        school.apply("phone_vacancies")
        # Synthesized vacancies are phoned, so they stay visible
        assert school.get_data("assignments").vector("phoned") == [X, K, X, K, K]
        assert school.visible_count("assignments") == 3

        school.unapply("phone_vacancies")
        assert len(school.data["assignments"]) == 3
        assert school.visible_count("assignments") == 1


class TestAggregateFilter:
    def test_is_hidden_by_threshold(self, school):
        assert not school.is_hidden({"offer": 2})
        school.apply("night")
        assert not school.is_hidden({"offer": 2})
        school.apply("language", {"languages": ["en"]})
        assert school.is_hidden({"offer": 2})
        assert not school.is_hidden({"offer": 1})

    def test_any_attribute_below_minimum_hides(self, school):
        school.apply("positions", {"positions": ["0590107", "0591227", "1190011"]})
        assert school.is_hidden({"offer": 1, "assignments": 1})
        assert not school.is_hidden({})


class TestReplaceData:
    def test_replace_discards_corrections(self, school):
        school.apply("night")
        school.apply("language", {"languages": ["en"]})
        new = copy.deepcopy(school.data)
        new["offer"] = new["offer"][:2]

        school.replace_data(new)
        assert school.data is new
        assert school.correction_status().is_empty()
        assert school.collections == {}
        assert school.visible_count("offer") == 2
        assert not school.is_applied("night")

    def test_replace_notifies_every_correctable_attribute(self, school):
        seen: list = []
        school.add_listener(lambda record, attrs: seen.append(attrs))
        school.replace_data(copy.deepcopy(school.data))
        assert seen == [frozenset({"offer", "assignments"})]


class TestListeners:
    def test_listener_receives_record_and_attributes(self, school):
        calls: list = []

        def listener(record, attrs):
            calls.append((record, attrs))

        school.add_listener(listener)
        school.apply("night")
        assert calls == [(school, frozenset({"offer"}))]

    def test_no_change_does_not_notify(self, school):
        calls: list = []
        school.add_listener(lambda record, attrs: calls.append(attrs))
        school.unapply("night")
        assert calls == []

    def test_listener_added_once_and_removable(self, school):
        calls: list = []

        def listener(record, attrs):
            calls.append(attrs)

        school.add_listener(listener)
        school.add_listener(listener)
        school.apply("night")
        school.remove_listener(listener)
        school.unapply("night")
        assert len(calls) == 1

    def test_change_event_emitted(self, school):
        captured: list = []
        with patch("corrigible.record.emit", side_effect=captured.append):
            school.apply("language", {"languages": ["en"]})
        assert captured == [RecordDataChanged(
            record_id="school-1",
            attributes=("assignments", "offer"),
            correction="language",
            operation="apply",
        )]
