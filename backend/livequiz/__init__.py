from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_bcrypt import Bcrypt
from flask_login import LoginManager
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
bcrypt = Bcrypt()
login_manager = LoginManager()
migrate = Migrate()
allowed_origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:5174",
    "http://127.0.0.1:5174",
]
socketio = SocketIO(cors_allowed_origins=allowed_origins, async_mode=None)

def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    flask_app.logger.setLevel(flask_app.config.get('LOG_LEVEL', 'INFO'))

    db.init_app(flask_app)
    bcrypt.init_app(flask_app)
    login_manager.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    # Live game engine: one store and one broadcaster per app
    from livequiz.services.games.catalog import QuizCatalog
    from livequiz.services.games.engine import GameEngine
    from livequiz.services.games.events import Broadcaster
    from livequiz.services.games.history import HistoryRepository
    from livequiz.services.games.session_store import SessionStore

    testing = bool(flask_app.config.get('TESTING', False))
    store = SessionStore(
        pin_length=int(flask_app.config.get('PIN_LENGTH', 6)),
        waiting_ttl_sec=int(flask_app.config.get('WAITING_SESSION_TTL_SEC', 86400)),
        ended_retention_sec=int(flask_app.config.get('ENDED_SESSION_RETENTION_SEC', 3600)),
    )
    broadcaster = Broadcaster(socketio, namespace='/ws', synchronous=testing)
    flask_app.extensions['livequiz.engine'] = GameEngine(
        store=store,
        catalog=QuizCatalog(),
        history=HistoryRepository(),
        broadcaster=broadcaster,
        max_players=int(flask_app.config.get('MAX_PLAYERS', 50)),
    )
    broadcaster.start()

    from livequiz.services.games.scheduler import schedule_expiry_sweeps
    schedule_expiry_sweeps(flask_app)

    # Import and register blueprints here
    from livequiz.main import main
    flask_app.register_blueprint(main)

    from livequiz.api.games import games
    # Mount game routes under /api to match frontend API client
    flask_app.register_blueprint(games, url_prefix='/api/games')

    from livequiz.api.history import history
    flask_app.register_blueprint(history, url_prefix='/api/games/history')

    # Register Socket.IO event handlers
    from livequiz.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=testing)

    # Flask-Login user loader
    from livequiz.models import User

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({'error': 'Login required', 'kind': 'Unauthorized'}), 401

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the database."""
        from livequiz.models import Quiz, Question
        with flask_app.app_context():
            db.drop_all()
            db.create_all()

            # Seed users
            users = {}
            for u in ['host', 'player1', 'player2']:
                user = User(username=u)
                user.set_password('password')
                db.session.add(user)
                users[u] = user
            db.session.flush()

            # Seed one demo quiz covering every question type
            quiz = Quiz(title='Demo Quiz', owner_id=users['host'].id, is_published=True)
            quiz.questions = [
                Question(text='Capital of France?', question_type='single-choice',
                         options=['Berlin', 'Paris', 'Rome'], correct_answer=1, order_index=0),
                Question(text='Pick the prime numbers', question_type='multiple-choice',
                         options=['2', '4', '5'], correct_answer=[0, 2], points=2, order_index=1),
                Question(text='The earth is round.', question_type='true-false',
                         correct_answer=True, order_index=2),
                Question(text='Chemical symbol for gold?', question_type='short-answer',
                         correct_answer='Au', accepted_answers=['gold (au)'], order_index=3),
            ]
            db.session.add(quiz)
            db.session.commit()
            print('Database has been reset and seeded!')

    flask_app.cli.add_command(db_reset_command)

    return flask_app
