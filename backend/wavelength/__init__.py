from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_bcrypt import Bcrypt
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
bcrypt = Bcrypt()
migrate = Migrate()
socketio = SocketIO(async_mode=None)

def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    allowed_origins = flask_app.config.get('CORS_ORIGINS', '*')

    db.init_app(flask_app)
    bcrypt.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    from wavelength.database import configure_engine
    with flask_app.app_context():
        configure_engine(db.engine)

    from wavelength.services.games.events import register_event_hooks
    register_event_hooks()

    from wavelength.errors import WavelengthError

    @flask_app.errorhandler(WavelengthError)
    def handle_wavelength_error(exc):
        return jsonify({'error': exc.message}), exc.status_code

    @flask_app.route('/')
    def index():
        return jsonify({'message': 'Wavelength game server', 'status': 'ok'})

    from wavelength.api.rooms import rooms
    flask_app.register_blueprint(rooms, url_prefix='/api/rooms')

    from wavelength.api.matchmaking import matchmaking
    flask_app.register_blueprint(matchmaking, url_prefix='/api/matchmake')

    from wavelength.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    @click.command('db-reset')
    def db_reset_command():
        """Drops and recreates the database tables."""
        import wavelength.models  # noqa: F401
        with flask_app.app_context():
            db.drop_all()
            db.create_all()
            print('Database has been reset!')

    @click.command('purge-queue')
    def purge_queue_command():
        """Deletes cancelled and expired matchmaking entries."""
        from wavelength.services.games.matchmaking import purge_queue
        with flask_app.app_context():
            removed = purge_queue()
            print(f'Removed {removed} matchmaking entries.')

    flask_app.cli.add_command(db_reset_command)
    flask_app.cli.add_command(purge_queue_command)

    return flask_app
