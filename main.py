"""
Console Test Harness for FormSession

Simple console loop to fill a schema file group by group without a UI.

Usage:
    python main.py path/to/schema.json

Commands:
    open <n>              open group n from the list
    set <field> <value>   write an answer (value may contain spaces)
    next | prev | back    navigation
    show                  redisplay the current screen
    quit                  leave
"""

import logging
import sys

from formengine.contracts import DropdownField
from formengine.core.form_session import FormSession
from formengine.errors import FormEngineError, UnknownFieldError
from formengine.results import IllegalCommand

# Configure logging
logging.basicConfig(
    level=logging.WARNING,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

EXIT_COMMANDS = {"quit", "exit", "stop"}


def print_separator(char="=", length=60):
    """Print a separator line"""
    print(char * length)


def print_screen(session):
    """Print group list or active group, depending on state"""
    print()
    fields = session.active_group_fields()
    state = session.current_state()

    if state.group_index is None:
        print_separator("-")
        print("GROUPS")
        print_separator("-")
        for group in session.group_list():
            print(f"  [{group.index}] {group.name}")
    else:
        group = session.group_list()[state.group_index]
        print_separator("-")
        print(f"GROUP {group.index}: {group.name}")
        print_separator("-")
        for view in fields:
            field = view.field
            marker = "*" if field.required else " "
            calc = " (calculated)" if field.is_calculated else ""
            value = "" if view.value is None else view.value
            print(f" {marker} {field.id} - {field.label}{calc}: {value}")
            if isinstance(field, DropdownField) and field.options:
                print(f"     options: {', '.join(o.label for o in field.options)}")
            if view.error:
                print(f"     ! {view.error}")

    print(f"\nActions: {', '.join(session.available_actions())}")


def run_command(session, line):
    """Execute one console command, return False to stop"""
    parts = line.split(maxsplit=2)
    command = parts[0].lower()

    if command in EXIT_COMMANDS:
        return False

    if command == "open" and len(parts) == 2 and parts[1].isdigit():
        result = session.select_group(int(parts[1]))
    elif command == "set" and len(parts) >= 2:
        value = parts[2] if len(parts) == 3 else ""
        result = session.set_field(parts[1], value)
    elif command == "next":
        result = session.next()
    elif command == "prev":
        result = session.previous()
    elif command == "back":
        result = session.back()
    elif command == "show":
        result = None
    else:
        print("Unknown command. Try: open <n>, set <field> <value>, next, prev, back, show, quit")
        return True

    if isinstance(result, IllegalCommand):
        print(f"Not possible now: {result.reason}")
    elif result is not None and result.evaluation_errors:
        logger.info(f"{len(result.evaluation_errors)} calculation(s) could not be updated")

    print_screen(session)
    return True


def main(argv):
    """Run console session"""
    if len(argv) != 2:
        print(__doc__)
        return 2

    session = FormSession()

    try:
        with open(argv[1], 'rb') as f:
            result = session.load_schema(f.read())
    except OSError as e:
        print(f"Cannot read schema file: {e}")
        return 1
    except FormEngineError as e:
        print(f"Cannot load form: {e}")
        return 1

    print_separator()
    print("SURVEY FORM - CONSOLE")
    print_separator()
    for warning in result.warnings:
        print(f"warning: {warning.field_context}: {warning.reason}")

    print_screen(session)

    while True:
        try:
            line = input("> ").strip()
            if not line:
                continue
            if not run_command(session, line):
                break

        except KeyboardInterrupt:
            print("\n\nSession interrupted by user (Ctrl+C)")
            break

        except UnknownFieldError as e:
            print(f"\nERROR: {e}")

    print_separator()
    print("Session closed")
    print_separator()
    return 0


if __name__ == '__main__':
    sys.exit(main(sys.argv))
