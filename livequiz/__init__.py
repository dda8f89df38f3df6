from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
migrate = Migrate()
socketio = SocketIO(async_mode=None)

SAMPLE_QUESTIONS = [
    {
        'text': 'Which planet is known as the Red Planet?',
        'options': ['Venus', 'Mars', 'Jupiter', 'Mercury'],
        'correctIndex': 1,
        'seconds': 20,
        'difficulty': 'easy',
        'category': 'Science',
    },
    {
        'text': 'What is the capital of Australia?',
        'options': ['Sydney', 'Melbourne', 'Canberra', 'Perth'],
        'correctIndex': 2,
        'seconds': 20,
        'difficulty': 'medium',
        'category': 'Geography',
    },
    {
        'text': 'Which language has the keyword "yield from"?',
        'options': ['Python', 'Go', 'C', 'Lua'],
        'correctIndex': 0,
        'seconds': 15,
        'difficulty': 'medium',
        'category': 'Technology',
    },
    {
        'text': 'How many sides does a heptagon have?',
        'options': ['6', '7', '8', '9'],
        'correctIndex': 1,
        'seconds': 15,
        'difficulty': 'easy',
        'category': 'Math',
    },
]


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    flask_app.logger.setLevel(flask_app.config.get('LOG_LEVEL', 'INFO'))

    db.init_app(flask_app)
    migrate.init_app(flask_app, db)
    origins = flask_app.config.get('CORS_ORIGINS') or []
    CORS(flask_app, supports_credentials=True, origins=origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=origins)

    from livequiz.main import main
    flask_app.register_blueprint(main)

    # Mount REST routes under /api to match the web client
    from livequiz.api.questions import questions
    flask_app.register_blueprint(questions, url_prefix='/api/questions')

    from livequiz.api.games import games
    flask_app.register_blueprint(games, url_prefix='/api/games')

    # One room manager per app; socket handlers and routes reach it via extensions
    from livequiz.socketio_events import build_room_manager, register_socketio_handlers
    flask_app.extensions['room_manager'] = build_room_manager(flask_app)
    register_socketio_handlers(flask_app.config.get('SOCKETIO_NAMESPACE', '/'))

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the question bank."""
        from livequiz.models import Question, validate_question
        with flask_app.app_context():
            db.drop_all()
            db.create_all()

            for payload in SAMPLE_QUESTIONS:
                question = Question()
                question.apply(validate_question(payload))
                db.session.add(question)

            db.session.commit()
            print('Question bank has been reset and seeded!')

    flask_app.cli.add_command(db_reset_command)

    return flask_app
