from stopthebus import socketio
from stopthebus.models import RoomSnapshot
from stopthebus.services.rooms.scheduler import dispatch


def _start(client, code):
    client.post('/api/rooms/join', json={'code': code, 'playerName': 'Bob'})
    client.post(f'/api/rooms/{code}/categories', json={'requesterName': 'Ann', 'categories': ['Food']})
    return client.post(f'/api/rooms/{code}/start', json={'requesterName': 'Ann'})


def test_round_timer_is_off_in_tests_by_default(client):
    code = client.post('/api/rooms/create', json={'hostName': 'Ann'}).get_json()['code']
    _start(client, code)
    assert client.get(f'/api/rooms/{code}/state').get_json()['phase'] == 'round_active'


def test_round_timer_completes_stalled_round(make_app):
    app = make_app(ENABLE_SCHEDULER_IN_TESTS=True, ROUND_DURATION_SEC=0.01)
    client = app.test_client()
    code = client.post('/api/rooms/create', json={'hostName': 'Ann'}).get_json()['code']
    listener = socketio.test_client(app, namespace='/ws')
    listener.emit('subscribe', {'code': code}, namespace='/ws')
    listener.get_received('/ws')

    res = _start(client, code)
    # The response reflects the round as it started
    assert res.get_json()['room']['phase'] == 'round_active'
    state = client.get(f'/api/rooms/{code}/state').get_json()
    assert state['phase'] == 'round_complete'
    assert state['currentRound'] == 1

    names = [pkt['name'] for pkt in listener.get_received('/ws')]
    assert names[-1] == 'roundCompleted'

    # Advancing re-arms the timer for the next round
    client.post(f'/api/rooms/{code}/advance', json={'requesterName': 'Ann'})
    state = client.get(f'/api/rooms/{code}/state').get_json()
    assert state['currentRound'] == 2
    assert state['phase'] == 'round_complete'
    listener.disconnect(namespace='/ws')


def test_unwatched_room_is_evicted(make_app):
    app = make_app(ENABLE_SCHEDULER_IN_TESTS=True, ROOM_IDLE_TIMEOUT_SEC=0.01)
    client = app.test_client()
    code = client.post('/api/rooms/create', json={'hostName': 'Ann'}).get_json()['code']
    res = client.get(f'/api/rooms/{code}/state')
    assert res.status_code == 404
    with app.app_context():
        assert RoomSnapshot.query.filter_by(code=code).first() is None


def test_room_is_evicted_after_last_subscriber_leaves(make_app):
    app = make_app(ENABLE_SCHEDULER_IN_TESTS=True, ROOM_IDLE_TIMEOUT_SEC=0.01)
    engine = app.extensions['room_engine']
    # Created directly so no eviction is armed before anyone subscribes
    code = engine.create_room('Ann').code
    listener = socketio.test_client(app, namespace='/ws')
    listener.emit('subscribe', {'code': code}, namespace='/ws')
    assert app.extensions['room_store'].view(code) is not None

    listener.emit('unsubscribe', {'code': code}, namespace='/ws')
    assert app.extensions['room_store'].view(code) is None
    listener.disconnect(namespace='/ws')


def test_restored_unwatched_room_is_evicted(make_app, tmp_path):
    uri = f"sqlite:///{tmp_path / 'rooms.db'}"
    first = make_app(SQLALCHEMY_DATABASE_URI=uri)
    code = first.extensions['room_engine'].create_room('Ann').code

    second = make_app(SQLALCHEMY_DATABASE_URI=uri, ENABLE_SCHEDULER_IN_TESTS=True, ROOM_IDLE_TIMEOUT_SEC=0.01)
    assert second.extensions['room_store'].view(code) is None
    with second.app_context():
        assert RoomSnapshot.query.filter_by(code=code).first() is None


def test_restored_active_round_still_expires(make_app, tmp_path):
    uri = f"sqlite:///{tmp_path / 'rooms.db'}"
    first = make_app(SQLALCHEMY_DATABASE_URI=uri)
    engine = first.extensions['room_engine']
    code = engine.create_room('Ann').code
    engine.join_room(code, 'Bob')
    engine.set_categories(code, 'Ann', ['Food'])
    engine.start_game(code, 'Ann')

    second = make_app(SQLALCHEMY_DATABASE_URI=uri, ENABLE_SCHEDULER_IN_TESTS=True, ROUND_DURATION_SEC=0.01)
    view = second.extensions['room_store'].view(code)
    assert view['phase'] == 'round_complete'
    assert view['currentRound'] == 1


def test_subscriber_arriving_during_idle_wait_keeps_room(make_app, monkeypatch):
    app = make_app(ENABLE_SCHEDULER_IN_TESTS=True, ROOM_IDLE_TIMEOUT_SEC=5)
    code = app.extensions['room_engine'].create_room('Ann').code
    leaving = socketio.test_client(app, namespace='/ws')
    arriving = socketio.test_client(app, namespace='/ws')
    leaving.emit('subscribe', {'code': code}, namespace='/ws')

    def subscribe_instead_of_sleeping(seconds):
        arriving.emit('subscribe', {'code': code}, namespace='/ws')

    monkeypatch.setattr(socketio, 'sleep', subscribe_instead_of_sleeping)
    leaving.emit('unsubscribe', {'code': code}, namespace='/ws')

    assert app.extensions['room_store'].view(code) is not None
    assert app.extensions['room_hub'].subscriber_count(code) == 1
    leaving.disconnect(namespace='/ws')
    arriving.disconnect(namespace='/ws')


def test_closed_room_drops_its_subscribers(flask_app, client, sio_client):
    hub = flask_app.extensions['room_hub']
    code = client.post('/api/rooms/create', json={'hostName': 'Ann'}).get_json()['code']
    sio_client.emit('subscribe', {'code': code}, namespace='/ws')
    sio_client.get_received('/ws')
    assert hub.subscriber_count(code) == 1

    dispatch(flask_app, flask_app.extensions['room_engine'].close_room(code))
    names = [pkt['name'] for pkt in sio_client.get_received('/ws')]
    assert names == ['roomClosed']
    assert hub.subscriber_count(code) == 0
