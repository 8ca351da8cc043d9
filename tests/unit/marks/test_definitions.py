"""Tests for claimbot/marks/definitions.py"""

import pytest

from claimbot.marks.definitions import BUILTIN_MARKS, definition_from_dict, load_definitions
from claimbot.marks.models import MarkOp


class TestBuiltinMarks:
    def test_thirteen_marks(self):
        assert len(BUILTIN_MARKS) == 13

    def test_failing_is_bot_only(self):
        failing = BUILTIN_MARKS["failing"]
        assert failing.user_can_set is False
        assert failing.user_can_clear is False

    def test_ready_clears_failing_and_flaky(self):
        triggers = BUILTIN_MARKS["ready"].triggers_for(MarkOp.MARK)
        assert {(t.mark_name, t.op) for t in triggers} == {
            ("failing", MarkOp.UNMARK),
            ("flaky", MarkOp.UNMARK),
        }

    def test_no_builtin_triggers_itself(self):
        for definition in BUILTIN_MARKS.values():
            assert all(t.mark_name != definition.name for t in definition.triggers)


class TestConfiguredMarks:
    def test_yaml_definition(self):
        definition = definition_from_dict(
            "blocked",
            {
                "description": "Blocked by infrastructure",
                "comment_required": True,
                "triggers": [{"mark": "ready", "op": "unmark"}],
            },
        )

        assert definition.comment_required is True
        assert definition.triggers[0].fires_on == MarkOp.MARK
        assert definition.triggers[0].op == MarkOp.UNMARK

    def test_self_trigger_rejected(self):
        with pytest.raises(ValueError):
            definition_from_dict("blocked", {"triggers": [{"mark": "blocked", "op": "unmark"}]})

    def test_malformed_trigger_rejected(self):
        with pytest.raises(ValueError):
            definition_from_dict("blocked", {"triggers": [{"mark": "ready", "op": "explode"}]})

    def test_overrides_merge_with_builtins(self):
        definitions = load_definitions({"important": {"description": "Very important"}})

        assert definitions["important"].description == "Very important"
        assert "ready" in definitions
