import logging

import click
from flask import Flask, jsonify
from flask_cors import CORS
from flask_socketio import SocketIO
from flask_sqlalchemy import SQLAlchemy

from config import Config

db = SQLAlchemy()
socketio = SocketIO(async_mode=None)


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    if not flask_app.debug:
        flask_app.logger.setLevel(logging.INFO)

    origins = flask_app.config.get('CORS_ORIGINS') or '*'
    db.init_app(flask_app)
    CORS(flask_app, origins=origins)
    socketio.init_app(flask_app, cors_allowed_origins=origins)

    from stopthebus.models import RoomSnapshot
    from stopthebus.services.rooms.broadcast import BroadcastHub
    from stopthebus.services.rooms.engine import RoomEngine
    from stopthebus.services.rooms.persistence import SnapshotWriter, load_rooms
    from stopthebus.services.rooms.store import RoomStore

    with flask_app.app_context():
        db.create_all()

    writer = SnapshotWriter(flask_app)
    store = RoomStore(writer=writer)
    store.load(load_rooms(flask_app))
    engine = RoomEngine(
        store,
        max_rounds=int(flask_app.config.get('MAX_ROUNDS', 0)),
        code_length=int(flask_app.config.get('ROOM_CODE_LENGTH', 4)),
        code_attempts=int(flask_app.config.get('ROOM_CODE_MAX_ATTEMPTS', 50)),
        max_name_length=int(flask_app.config.get('MAX_NAME_LENGTH', 32)),
    )
    flask_app.extensions['room_writer'] = writer
    flask_app.extensions['room_store'] = store
    flask_app.extensions['room_engine'] = engine
    flask_app.extensions['room_hub'] = BroadcastHub(socketio)

    from stopthebus.api.rooms import rooms
    flask_app.register_blueprint(rooms, url_prefix='/api/rooms')

    from stopthebus.socketio_events import register_socketio_handlers
    register_socketio_handlers()

    @flask_app.route('/health')
    def health():
        return jsonify({'status': 'healthy', 'rooms': len(store)})

    @click.command('rooms-list')
    def rooms_list_command():
        """Lists every live room with its phase and players."""
        for code in sorted(store.all_codes()):
            view = store.view(code)
            if view is None:
                continue
            click.echo(f"{code}  {view['phase']:<15} round={view['currentRound']}  "
                       f"host={view['host']}  players={', '.join(view['players'])}")

    @click.command('rooms-reset')
    def rooms_reset_command():
        """Drops and recreates the room snapshot table."""
        with flask_app.app_context():
            RoomSnapshot.__table__.drop(db.engine, checkfirst=True)
            db.create_all()
        store.load([])
        click.echo('Room snapshots have been reset!')

    flask_app.cli.add_command(rooms_list_command)
    flask_app.cli.add_command(rooms_reset_command)

    from stopthebus.services.rooms.scheduler import arm_restored_rooms
    arm_restored_rooms(flask_app)

    writer.start()
    return flask_app
