from flask import Blueprint, jsonify, current_app

main = Blueprint('main', __name__)

@main.route('/')
def index():
    return jsonify({'message': 'Welcome to the LiveQuiz server!'})

@main.route('/health')
def health():
    manager = current_app.extensions['room_manager']
    return jsonify({'status': 'ok', 'rooms': len(manager.rooms), 'connections': len(manager.registry)})
