"""
Tests for the in-memory row editor.

Run with: pytest tests/test_row_editor.py -v
"""
import re

import pytest
from pydantic import ValidationError

from core.row_editor import RowEditor
from models import ObservationRow, RemotePhoto
from models.row import new_row_id


class TestRowIds:

    def test_format(self):
        assert re.fullmatch(r"local-\d{13,}-[0-9a-z]{9}", new_row_id())

    def test_unique(self):
        assert len({new_row_id() for _ in range(200)}) == 200


class TestPlaceholder:
    """The editor never becomes empty."""

    def test_starts_with_one_blank_row(self):
        editor = RowEditor()
        assert len(editor) == 1
        assert not editor.rows[0].is_meaningful()
        assert editor.rows[0].status == "pending"

    def test_delete_last_row(self):
        editor = RowEditor()
        editor.delete(editor.rows[0].id)
        assert len(editor) == 1

    def test_replace_all_empty(self):
        editor = RowEditor([ObservationRow(srno="1")])
        editor.replace_all([])
        assert len(editor) == 1

    def test_clear(self):
        editor = RowEditor([ObservationRow(srno="1"), ObservationRow(srno="2")])
        editor.clear()
        assert len(editor) == 1
        assert not editor.meaningful()


class TestMutations:

    def test_add_returns_new_row(self):
        editor = RowEditor()
        row = editor.add()
        assert editor.rows[-1] is row
        assert len(editor) == 2

    def test_add_duplicate_id(self):
        editor = RowEditor()
        with pytest.raises(ValueError):
            editor.add(ObservationRow(id=editor.rows[0].id))

    def test_update(self):
        editor = RowEditor()
        rid = editor.rows[0].id
        updated = editor.update(rid, "observation", "Oil leak")
        assert updated.observation == "Oil leak"
        assert editor.get(rid).observation == "Oil leak"

    def test_update_unknown_field(self):
        editor = RowEditor()
        with pytest.raises(ValueError):
            editor.update(editor.rows[0].id, "id", "x")

    def test_update_bad_status(self):
        editor = RowEditor()
        with pytest.raises(ValidationError):
            editor.update(editor.rows[0].id, "status", "done")

    def test_update_unknown_row(self):
        with pytest.raises(KeyError):
            RowEditor().update("nope", "srno", "1")

    def test_set_photo(self):
        editor = RowEditor()
        rid = editor.rows[0].id
        editor.set_photo(rid, "before", RemotePhoto(url="https://x/b.jpg"))
        assert editor.get(rid).before_photo_url == "https://x/b.jpg"
        editor.set_photo(rid, "before", None)
        assert editor.get(rid).before_photo is None

    def test_reorder(self):
        a, b, c = ObservationRow(srno="a"), ObservationRow(srno="b"), ObservationRow(srno="c")
        editor = RowEditor([a, b, c])
        editor.reorder(0, 2)
        assert [r.srno for r in editor.rows] == ["b", "c", "a"]
        editor.reorder(2, 0)
        assert [r.srno for r in editor.rows] == ["a", "b", "c"]

    def test_reorder_out_of_range(self):
        editor = RowEditor([ObservationRow(srno="a")])
        with pytest.raises(IndexError):
            editor.reorder(0, 1)

    def test_rows_is_a_copy(self):
        editor = RowEditor()
        editor.rows.append(ObservationRow())
        assert len(editor) == 1


class TestNotifications:
    """Every mutation notifies listeners exactly once."""

    def test_one_notification_per_mutation(self):
        editor = RowEditor()
        seen = []
        editor.subscribe(lambda rows: seen.append(len(rows)))

        row = editor.add()
        editor.update(row.id, "srno", "1")
        editor.extend([ObservationRow(), ObservationRow()])
        editor.reorder(0, 1)
        editor.delete(row.id)

        assert seen == [2, 2, 4, 4, 3]

    def test_extend_empty_is_silent(self):
        editor = RowEditor()
        seen = []
        editor.subscribe(seen.append)
        assert editor.extend([]) == 0
        assert seen == []

    def test_broken_listener_does_not_break_editing(self):
        editor = RowEditor()
        seen = []

        def boom(rows):
            raise RuntimeError("listener bug")

        editor.subscribe(boom)
        editor.subscribe(seen.append)
        editor.add()
        assert len(seen) == 1


class TestFiltering:

    def setup_method(self):
        self.leak = ObservationRow(srno="1", observation="Oil leak near gasket junction", responsibility="Maintenance")
        self.brake = ObservationRow(srno="2", part_name="Brake", status="completed", responsibility="Quality")
        self.pump = ObservationRow(srno="3", part_name="Pump", action_plan="Replace GASKET", responsibility="Maintenance")
        self.editor = RowEditor([self.leak, self.brake, self.pump])

    def test_search_includes_and_excludes(self):
        result = self.editor.filtered("gasket")
        assert self.leak in result
        assert self.pump in result
        assert self.brake not in result

    def test_search_is_case_insensitive(self):
        assert self.editor.filtered("BRAKE") == [self.brake]

    def test_search_ignores_op_number(self):
        editor = RowEditor([ObservationRow(op_number="OP-gasket")])
        assert editor.filtered("gasket") == []

    def test_status_filter(self):
        assert self.editor.filtered(status_filter="completed") == [self.brake]
        assert len(self.editor.filtered(status_filter="pending")) == 2

    def test_responsibility_filter_exact(self):
        assert self.editor.filtered(responsibility_filter="Maintenance") == [self.leak, self.pump]
        assert self.editor.filtered(responsibility_filter="maintenance") == []

    def test_combined(self):
        assert self.editor.filtered("gasket", "pending", "Maintenance") == [self.leak, self.pump]
        assert self.editor.filtered("gasket", "completed") == []

    def test_responsibilities_first_seen(self):
        assert self.editor.responsibilities() == ["Maintenance", "Quality"]


class TestSummary:

    def test_counts(self):
        editor = RowEditor([
            ObservationRow(srno="1", action_plan="fix", before_photo=RemotePhoto(url="https://x/1.jpg")),
            ObservationRow(srno="2", remarks="ok", status="completed"),
            ObservationRow(),
        ])
        assert editor.summary() == {
            "total_entries": 3,
            "with_data": 2,
            "with_photos": 1,
            "with_action_plans": 1,
            "with_remarks": 1,
            "completed": 1,
            "pending": 2,
        }
