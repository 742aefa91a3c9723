from flask import Blueprint, jsonify, request, current_app
from ballotroom.exceptions import BallotRoomError
from ballotroom.services import rooms as svc


rooms = Blueprint('rooms', __name__)


@rooms.errorhandler(BallotRoomError)
def handle_room_error(err: BallotRoomError):
    current_app.logger.info(f"[rejected] path={request.path} code={err.code} message={err.message}")
    return jsonify(err.to_dict()), err.status_code


def _participant_id(data):
    pid = data.get('participant_id')
    try:
        return int(pid) if pid is not None else None
    except (TypeError, ValueError):
        return None


@rooms.route('/create', methods=['POST'])
def create_room():
    data = request.get_json(silent=True) or {}
    host_name = (data.get('host_name') or '').strip()
    if not host_name:
        return jsonify({'error': 'host_name is required'}), 400
    result = svc.create_room(host_name, data.get('custom_code') or None)
    return jsonify(result), 201


@rooms.route('/join', methods=['POST'])
def join_room():
    data = request.get_json(silent=True) or {}
    room_code = data.get('room_code')
    name = (data.get('participant_name') or '').strip()
    if not all([room_code, name]):
        return jsonify({'error': 'Room code and participant name are required'}), 400
    result = svc.join_room(room_code, name, _participant_id(data))
    return jsonify(result), 200 if result['isRejoin'] else 201


@rooms.route('/code/<string:room_code>', methods=['GET'])
def get_room_by_code(room_code):
    return jsonify(svc.get_room_by_code(room_code).to_dict())


@rooms.route('/<int:room_id>', methods=['GET'])
def get_room(room_id):
    return jsonify(svc.get_room(room_id).to_dict())


@rooms.route('/<int:room_id>/participants', methods=['GET'])
def get_participants(room_id):
    svc.get_room(room_id)
    return jsonify([p.to_dict() for p in svc.list_participants(room_id)])


@rooms.route('/<int:room_id>/predictions', methods=['GET'])
def get_predictions(room_id):
    svc.get_room(room_id)
    participant_id = request.args.get('participant_id', type=int)
    return jsonify([p.to_dict() for p in svc.list_predictions(room_id, participant_id)])


@rooms.route('/<int:room_id>/predictions', methods=['PUT'])
def save_prediction(room_id):
    data = request.get_json(silent=True) or {}
    category_id = data.get('category_id')
    nominee_id = data.get('nominee_id')
    if not all([category_id, nominee_id]):
        return jsonify({'error': 'category_id and nominee_id are required'}), 400
    pred = svc.save_prediction(room_id, _participant_id(data), category_id, nominee_id)
    return jsonify(pred.to_dict())


@rooms.route('/<int:room_id>/winners', methods=['GET'])
def get_winners(room_id):
    svc.get_room(room_id)
    return jsonify([w.to_dict() for w in svc.list_winners(room_id)])


@rooms.route('/<int:room_id>/winners', methods=['PUT'])
def declare_winner(room_id):
    data = request.get_json(silent=True) or {}
    category_id = data.get('category_id')
    nominee_id = data.get('nominee_id')
    if not all([category_id, nominee_id]):
        return jsonify({'error': 'category_id and nominee_id are required'}), 400
    winner = svc.declare_winner(room_id, _participant_id(data), category_id, nominee_id)
    return jsonify(winner.to_dict())


@rooms.route('/<int:room_id>/phase', methods=['POST'])
def set_phase(room_id):
    data = request.get_json(silent=True) or {}
    phase = data.get('phase')
    if not phase:
        return jsonify({'error': 'phase is required'}), 400
    return jsonify(svc.set_phase(room_id, _participant_id(data), phase).to_dict())


@rooms.route('/<int:room_id>/current-category', methods=['POST'])
def set_current_category(room_id):
    data = request.get_json(silent=True) or {}
    if 'category_id' not in data:
        return jsonify({'error': 'category_id is required (null clears it)'}), 400
    room = svc.set_current_category(room_id, _participant_id(data), data.get('category_id'))
    return jsonify(room.to_dict())


@rooms.route('/<int:room_id>/leaderboard', methods=['GET'])
def get_leaderboard(room_id):
    return jsonify(svc.get_leaderboard(room_id))
