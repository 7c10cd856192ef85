"""
Navigation mode enum for the group-by-group form flow.

Invariants:
- Exactly one mode is active at a time
- GROUP_ACTIVE always comes with a group index in [0, group_count)
- UNLOADED is only the initial mode; a failed load never returns to it
  once a schema has been installed

Design:
- NavigationMode is a string-based enum for JSON serialization
- NavigationController owns all mode transitions
"""

from enum import Enum


class NavigationMode(str, Enum):
    """
    UNLOADED:
        No schema yet. Only load_schema is accepted.

    GROUP_SELECT:
        Schema loaded, user picks a group from the list.
        Entry: load_schema, back
        Exit: select_group -> GROUP_ACTIVE

    GROUP_ACTIVE:
        One group's fields are shown and editable.
        Exit: back -> GROUP_SELECT
              next (valid, not last) -> GROUP_ACTIVE(i + 1)
              previous (i > 0) -> GROUP_ACTIVE(i - 1)
    """
    UNLOADED = "unloaded"
    GROUP_SELECT = "group_select"
    GROUP_ACTIVE = "group_active"


# Single source of truth for valid mode strings
VALID_MODES = {mode.value for mode in NavigationMode}
