from flask import Blueprint, jsonify, current_app
from livequiz.services.quiz.errors import QuizError


games = Blueprint('games', __name__)


@games.route('/<string:pin>', methods=['GET'])
def get_game_state(pin):
    """Public snapshot of a live (or recently ended) room."""
    manager = current_app.extensions['room_manager']
    try:
        state = manager.room_state(pin)
    except QuizError as exc:
        return jsonify({'error': exc.message}), 404
    # Include the scoring curve so clients can explain points
    state['scoring'] = {'max': manager.max_points, 'min': manager.min_points}
    return jsonify(state)
