from flask import Blueprint, current_app, jsonify, request

from stopthebus.services.rooms.codes import normalize_code
from stopthebus.services.rooms.errors import InvalidInput, RoomError
from stopthebus.services.rooms.scheduler import dispatch, schedule_idle_eviction


rooms = Blueprint('rooms', __name__)


def _engine():
    return current_app.extensions['room_engine']


def _body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise InvalidInput('Request body must be a JSON object')
    return data


def _text(data: dict, field: str) -> str:
    value = data.get(field)
    if not isinstance(value, str) or not value.strip():
        raise InvalidInput(f"{field} is required")
    return value.strip()


def _code(value) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidInput('code is required')
    return normalize_code(value)


def _publish(outcome):
    dispatch(current_app._get_current_object(), outcome)
    return outcome.result


@rooms.errorhandler(RoomError)
def handle_room_error(exc: RoomError):
    current_app.logger.info(f"[rejected] {request.method} {request.path} {exc.kind}: {exc}")
    return jsonify(exc.to_dict()), exc.status_code


@rooms.route('/categories/defaults', methods=['GET'])
def default_categories():
    return jsonify({'categories': list(current_app.config.get('DEFAULT_CATEGORIES', []))})


@rooms.route('/create', methods=['POST'])
def create_room():
    data = _body()
    max_rounds = data.get('maxRounds')
    if max_rounds is not None and (isinstance(max_rounds, bool) or not isinstance(max_rounds, int)):
        raise InvalidInput('maxRounds must be an integer')
    outcome = _engine().create_room(_text(data, 'hostName'), max_rounds=max_rounds)
    # Rooms nobody subscribes to are evicted like abandoned ones
    schedule_idle_eviction(current_app._get_current_object(), outcome.code)
    return jsonify(_publish(outcome)), 201


@rooms.route('/join', methods=['POST'])
def join_room():
    data = _body()
    outcome = _engine().join_room(_code(data.get('code')), _text(data, 'playerName'))
    return jsonify(_publish(outcome)), 201


@rooms.route('/<string:code>/categories', methods=['POST'])
def set_categories(code):
    data = _body()
    categories = data.get('categories')
    if not isinstance(categories, list):
        raise InvalidInput('categories must be a list')
    outcome = _engine().set_categories(normalize_code(code), _text(data, 'requesterName'), categories)
    return jsonify(_publish(outcome))


@rooms.route('/<string:code>/start', methods=['POST'])
def start_game(code):
    data = _body()
    outcome = _engine().start_game(normalize_code(code), _text(data, 'requesterName'))
    return jsonify(_publish(outcome))


@rooms.route('/<string:code>/complete', methods=['POST'])
def complete_round(code):
    data = _body()
    outcome = _engine().complete_round(normalize_code(code), _text(data, 'requesterName'))
    return jsonify(_publish(outcome))


@rooms.route('/<string:code>/advance', methods=['POST'])
def advance_round(code):
    data = _body()
    outcome = _engine().advance_round(normalize_code(code), _text(data, 'requesterName'))
    return jsonify(_publish(outcome))


@rooms.route('/<string:code>/end', methods=['POST'])
def end_game(code):
    data = _body()
    outcome = _engine().end_game(normalize_code(code), _text(data, 'requesterName'))
    return jsonify(_publish(outcome))


@rooms.route('/<string:code>/answers', methods=['POST'])
def submit_answers(code):
    data = _body()
    answers = data.get('answers')
    if not isinstance(answers, dict):
        raise InvalidInput('answers must be an object')
    outcome = _engine().submit_answers(normalize_code(code), _text(data, 'playerName'), answers)
    return jsonify(_publish(outcome))


@rooms.route('/<string:code>/submissions', methods=['GET'])
def get_submissions(code):
    return jsonify(_engine().get_submissions(normalize_code(code)))


@rooms.route('/<string:code>/scores', methods=['POST'])
def adjust_score(code):
    data = _body()
    delta = data.get('delta')
    if isinstance(delta, bool) or not isinstance(delta, int):
        raise InvalidInput('delta must be an integer')
    outcome = _engine().adjust_score(
        normalize_code(code),
        _text(data, 'requesterName'),
        _text(data, 'targetPlayer'),
        delta,
    )
    return jsonify(_publish(outcome))


@rooms.route('/<string:code>/state', methods=['GET'])
def get_room_view(code):
    return jsonify(_engine().get_room_view(normalize_code(code)))
