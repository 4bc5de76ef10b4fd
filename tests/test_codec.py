"""Rule codec tests."""
import pytest
from policy_adapter.core.exceptions import PreconditionError
from policy_adapter.services.codec import parse_line, to_line, to_policy_rule, to_row, to_rule


class TestToRow:
    """Positioning rule values into fixed-width rows."""

    def test_pads_missing_columns_with_null(self):
        row = to_row("p", ["alice", "data1", "read"])
        assert row == {
            "p_type": "p", "v0": "alice", "v1": "data1", "v2": "read",
            "v3": None, "v4": None, "v5": None,
        }

    def test_six_values_fill_every_column(self):
        row = to_row("p", ["a", "b", "c", "d", "e", "f"])
        assert [row[f"v{i}"] for i in range(6)] == ["a", "b", "c", "d", "e", "f"]

    def test_more_than_six_values_rejected(self):
        with pytest.raises(PreconditionError):
            to_row("p", ["a", "b", "c", "d", "e", "f", "g"])


class TestToRule:
    """Decoding rows back to canonical rules."""

    def test_round_trip(self):
        values = ["alice", "data1", "read"]
        assert to_rule(to_row("p", values)) == ("p", values)

    def test_trailing_empties_trimmed(self):
        row = {"p_type": "p", "v0": "alice", "v1": "data1", "v2": "", "v3": None, "v4": "", "v5": None}
        assert to_rule(row) == ("p", ["alice", "data1"])

    def test_interior_empties_preserved(self):
        row = to_row("p", ["a", "", "c"])
        assert to_rule(row) == ("p", ["a", "", "c"])

    def test_interior_null_becomes_empty_string(self):
        row = {"p_type": "p", "v0": "a", "v1": None, "v2": "c"}
        assert to_rule(row) == ("p", ["a", "", "c"])

    def test_trim_is_idempotent(self):
        row = {"p_type": "g", "v0": "alice", "v1": "", "v2": "admin", "v3": "", "v4": None, "v5": None}
        ptype, values = to_rule(row)
        assert to_rule(to_row(ptype, values)) == (ptype, values)

    def test_id_column_ignored(self):
        row = dict(to_row("g", ["alice", "admin"]), id=42)
        assert to_rule(row) == ("g", ["alice", "admin"])

    def test_policy_rule_model(self):
        rule = to_policy_rule(to_row("g2", ["alice", "admin", "domain1"]))
        assert rule.ptype == "g2"
        assert rule.sec == "g"
        assert rule.values == ["alice", "admin", "domain1"]


class TestToLine:
    """The line form drops empties anywhere, unlike to_rule."""

    def test_joins_type_and_values(self):
        assert to_line(to_row("p", ["alice", "data1", "read"])) == "p, alice, data1, read"

    def test_interior_empties_dropped(self):
        assert to_line(to_row("p", ["a", "", "c"])) == "p, a, c"

    def test_parse_line(self):
        assert parse_line("p, alice, data1, read") == ("p", ["alice", "data1", "read"])
