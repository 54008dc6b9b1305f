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

SEED_PROFILES = [
    {'participant_id': 'p1', 'name': 'Avery', 'category': 'A', 'token': 'token-p1'},
    {'participant_id': 'p2', 'name': 'Blake', 'category': 'B', 'token': 'token-p2'},
    {'participant_id': 'p3', 'name': 'Casey', 'category': 'A', 'token': 'token-p3'},
    {'participant_id': 'p4', 'name': 'Drew', 'category': 'B', 'token': 'token-p4'},
]


def get_services(flask_app):
    return flask_app.extensions['rendezvous']


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)

    from rendezvous.logconfig import configure_logging
    configure_logging(flask_app)

    db.init_app(flask_app)
    migrate.init_app(flask_app, db)
    origins = flask_app.config.get('CORS_ORIGINS') or '*'
    if origins == ['*']:
        origins = '*'
    CORS(flask_app, origins=origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=origins)

    from rendezvous.services import build_services
    services = build_services(flask_app.config)
    flask_app.extensions['rendezvous'] = services

    from rendezvous.errors import register_error_handlers
    register_error_handlers(flask_app)

    from rendezvous.main import main
    flask_app.register_blueprint(main)

    from rendezvous.api.game import game
    flask_app.register_blueprint(game, url_prefix='/api')

    from rendezvous.api.profiles import profiles
    flask_app.register_blueprint(profiles, url_prefix='/api/profiles')

    from rendezvous.api.logs import logs
    flask_app.register_blueprint(logs, url_prefix='/api/logs')

    from rendezvous.socketio_events import register_socketio_handlers
    register_socketio_handlers(services, namespace=flask_app.config.get('LIVE_NAMESPACE', '/ws'))

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the database."""
        with flask_app.app_context():
            db.drop_all()
            db.create_all()
            for seed in SEED_PROFILES:
                services.profiles.save(**seed)
            print('Database has been reset and seeded!')

    flask_app.cli.add_command(db_reset_command)

    return flask_app
