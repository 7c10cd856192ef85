"""
Flask Web Application for the Survey Form Engine

JSON API over one FormSession, for a browser or mobile UI to render.

Environment:
    FORMENGINE_LOG_LEVEL    logging level (default INFO)
    FORMENGINE_SCHEMA_PATH  optional schema file preloaded at startup
"""

from flask import Flask, request, jsonify
import logging
import os

from formengine.contracts import DropdownField, TextBoxField, UnrecognizedField
from formengine.core.form_session import FormSession
from formengine.errors import CycleDetectedError, SchemaParseError, UnknownFieldError
from formengine.results import IllegalCommand

# Configure logging
logging.basicConfig(
    level=os.environ.get('FORMENGINE_LOG_LEVEL', 'INFO').upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Initialize Flask app
app = Flask(__name__)
app.config['SCHEMA_PATH'] = os.environ.get('FORMENGINE_SCHEMA_PATH')

# Global state for the current form session
current_session = {
    'session': FormSession()
}


def get_session():
    return current_session['session']


def reset_session():
    """Start a fresh session (drops schema and answers)"""
    current_session['session'] = FormSession()
    return current_session['session']


# ========================
# Serialization
# ========================

def serialize_field(view):
    field = view.field
    if isinstance(field, DropdownField):
        variant = {'options': [{'label': o.label, 'value': o.value} for o in field.options]}
    elif isinstance(field, (TextBoxField, UnrecognizedField)):
        variant = {}
    else:
        raise TypeError(f"Unhandled field variant: {type(field).__name__}")

    return {
        'id': field.id,
        'label': field.label,
        'type': field.type_tag,
        'kind': field.kind.value,
        'required': field.required,
        'min': field.min_value,
        'max': field.max_value,
        'regex': field.regex,
        'parent_id': field.parent_id,
        'calculated': field.is_calculated,
        'value': view.value,
        'error': view.error,
        **variant
    }


def serialize_session(session):
    """Full view of the session for the UI"""
    return {
        'state': session.current_state().to_json(),
        'groups': [{'index': g.index, 'id': g.id, 'name': g.name} for g in session.group_list()],
        'fields': [serialize_field(v) for v in session.active_group_fields()],
        'values': session.snapshot().to_json(),
        'errors': dict(session.navigation.error_map),
        'actions': session.available_actions(),
        'warnings': [
            {'context': w.field_context, 'reason': w.reason} for w in session.warnings
        ],
    }


def command_response(result):
    """Map a command result to a JSON response"""
    session = get_session()

    if isinstance(result, IllegalCommand):
        return jsonify({
            'success': False,
            'error': result.reason,
            'command': result.command_type,
            **serialize_session(session)
        }), 409

    return jsonify({
        'success': True,
        **serialize_session(session)
    })


def error_response(message, status):
    return jsonify({
        'success': False,
        'error': message
    }), status


# ========================
# Routes
# ========================

@app.route('/api/schema', methods=['POST'])
def load_schema():
    """Load a schema (request body is the schema JSON)"""
    try:
        result = get_session().load_schema(request.get_data())
        return command_response(result)

    except (SchemaParseError, CycleDetectedError) as e:
        logger.error(f"Schema rejected: {e}")
        return error_response(str(e), 400)


@app.route('/api/state', methods=['GET'])
def get_state():
    """Current navigation state, groups, active fields and errors"""
    return jsonify({
        'success': True,
        **serialize_session(get_session())
    })


@app.route('/api/groups/<int:index>', methods=['POST'])
def select_group(index):
    return command_response(get_session().select_group(index))


@app.route('/api/fields/<field_id>', methods=['POST', 'PUT'])
def set_field(field_id):
    """Write an answer: body {"value": ...}"""
    data = request.get_json(silent=True) or {}
    if 'value' not in data:
        return error_response("Request body must contain 'value'", 400)

    try:
        return command_response(get_session().set_field(field_id, data['value']))

    except UnknownFieldError as e:
        logger.error(f"Write to unknown field: {e}")
        return error_response(str(e), 404)


@app.route('/api/next', methods=['POST'])
def next_group():
    return command_response(get_session().next())


@app.route('/api/previous', methods=['POST'])
def previous_group():
    return command_response(get_session().previous())


@app.route('/api/back', methods=['POST'])
def back_to_groups():
    return command_response(get_session().back())


@app.route('/api/reset', methods=['POST'])
def reset():
    """Discard the current session"""
    reset_session()
    return jsonify({
        'success': True,
        **serialize_session(get_session())
    })


def preload_schema(path):
    """Load a schema file into the current session"""
    with open(path, 'rb') as f:
        get_session().load_schema(f.read())
    logger.info(f"Preloaded schema from {path}")


if __name__ == '__main__':
    if app.config['SCHEMA_PATH']:
        preload_schema(app.config['SCHEMA_PATH'])

    print("\n" + "="*60)
    print("SURVEY FORM ENGINE - JSON API")
    print("="*60)
    print("\nServer starting on http://localhost:5000")
    print("\nPress Ctrl+C to stop the server")
    print("="*60 + "\n")

    app.run(debug=False, host='0.0.0.0', port=5000)
