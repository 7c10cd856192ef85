"""
Unit tests for the Navigation Controller state machine

Run with: pytest tests/test_navigation_controller.py -v
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import unittest

from formengine.contracts import FormSchema, Group, TextBoxField
from formengine.core.navigation_controller import NavigationController, NavigationState
from formengine.errors import IllegalTransitionError
from formengine.utils.navigation_modes import NavigationMode, VALID_MODES


def make_schema():
    """Three groups; only the first has a required field"""
    return FormSchema(groups=(
        Group(id="g0", name="Intro", fields=(TextBoxField(id="age", label="Age", required=True),)),
        Group(id="g1", name="Middle", fields=(TextBoxField(id="note", label="Note"),)),
        Group(id="g2", name="End", fields=()),
    ))


def active(index):
    return NavigationState(mode=NavigationMode.GROUP_ACTIVE, group_index=index)


class TestNavigationController(unittest.TestCase):

    def setUp(self):
        self.nav = NavigationController()

    def test_initial_state_is_unloaded(self):
        self.assertEqual(self.nav.state.mode, NavigationMode.UNLOADED)
        self.assertEqual(self.nav.available_actions(), ["load_schema"])

    def test_commands_rejected_before_load(self):
        for call in (lambda: self.nav.select_group(0), self.nav.back,
                     self.nav.previous, lambda: self.nav.next({})):
            with self.assertRaises(IllegalTransitionError):
                call()
        self.assertEqual(self.nav.state.mode, NavigationMode.UNLOADED)

    def test_load_goes_to_group_select(self):
        state = self.nav.load(make_schema())
        self.assertEqual(state.mode, NavigationMode.GROUP_SELECT)
        self.assertIsNone(state.group_index)
        self.assertIn("select_group", self.nav.available_actions())

    def test_select_group(self):
        self.nav.load(make_schema())
        self.assertEqual(self.nav.select_group(1), active(1))
        self.assertEqual(self.nav.active_group().id, "g1")

    def test_select_group_out_of_range(self):
        self.nav.load(make_schema())
        for bad in (-1, 3, "1", True):
            with self.assertRaises(IllegalTransitionError):
                self.nav.select_group(bad)
        self.assertEqual(self.nav.state.mode, NavigationMode.GROUP_SELECT)

    def test_select_group_only_from_group_select(self):
        self.nav.load(make_schema())
        self.nav.select_group(0)
        with self.assertRaises(IllegalTransitionError):
            self.nav.select_group(1)

    def test_back_returns_to_group_select(self):
        self.nav.load(make_schema())
        self.nav.select_group(2)
        self.assertEqual(self.nav.back().mode, NavigationMode.GROUP_SELECT)
        with self.assertRaises(IllegalTransitionError):
            self.nav.back()

    def test_next_blocked_by_validation(self):
        self.nav.load(make_schema())
        self.nav.select_group(0)

        result = self.nav.next({"age": "  "})

        self.assertFalse(result.is_valid)
        self.assertEqual(self.nav.state, active(0))
        self.assertEqual(self.nav.error_map, {"age": "This field is required"})

    def test_next_advances_when_valid_and_clears_errors(self):
        self.nav.load(make_schema())
        self.nav.select_group(0)
        self.nav.next({"age": ""})

        result = self.nav.next({"age": "30"})

        self.assertTrue(result.is_valid)
        self.assertEqual(self.nav.state, active(1))
        self.assertEqual(self.nav.error_map, {})

    def test_next_on_last_group_is_noop_and_not_offered(self):
        self.nav.load(make_schema())
        self.nav.select_group(2)

        self.assertNotIn("next", self.nav.available_actions())
        self.nav.next({})
        self.assertEqual(self.nav.state, active(2))

    def test_previous(self):
        self.nav.load(make_schema())
        self.nav.select_group(1)

        self.assertEqual(self.nav.previous(), active(0))
        self.assertNotIn("previous", self.nav.available_actions())

    def test_previous_at_first_group_is_noop(self):
        self.nav.load(make_schema())
        self.nav.select_group(0)
        self.assertEqual(self.nav.previous(), active(0))

    def test_previous_is_never_validated(self):
        """Going backward skips validation even if the current group is invalid"""
        schema = FormSchema(groups=(
            Group(id="a", name="A"),
            Group(id="b", name="B", fields=(TextBoxField(id="x", label="X", required=True),)),
        ))
        self.nav.load(schema)
        self.nav.select_group(1)
        self.assertEqual(self.nav.previous(), active(0))

    def test_reload_resets_from_any_state(self):
        self.nav.load(make_schema())
        self.nav.select_group(0)
        self.nav.next({})
        self.assertTrue(self.nav.error_map)

        self.nav.load(make_schema())

        self.assertEqual(self.nav.state.mode, NavigationMode.GROUP_SELECT)
        self.assertEqual(self.nav.error_map, {})

    def test_actions_in_middle_group(self):
        self.nav.load(make_schema())
        self.nav.select_group(1)
        self.assertEqual(
            self.nav.available_actions(),
            ["load_schema", "set_field", "back", "previous", "next"],
        )

    def test_state_json_uses_valid_modes(self):
        self.nav.load(make_schema())
        self.nav.select_group(1)
        data = self.nav.state.to_json()
        self.assertIn(data['mode'], VALID_MODES)
        self.assertEqual(data, {'mode': 'group_active', 'group_index': 1})

    def test_empty_schema_offers_no_group(self):
        self.nav.load(FormSchema())
        self.assertNotIn("select_group", self.nav.available_actions())


if __name__ == '__main__':
    unittest.main()
