import threading

import pytest

from stopthebus.services.rooms.errors import RoomNotFound
from stopthebus.services.rooms.room import Phase, Room
from stopthebus.services.rooms.store import RoomStore


class RecordingWriter:
    def __init__(self):
        self.calls = []

    def schedule(self, code, view):
        self.calls.append((code, view))


def test_insert_claims_code_once():
    store = RoomStore()
    assert store.insert(Room.create('ABCD', 'Ann'))
    assert not store.insert(Room.create('ABCD', 'Bob'))
    assert store.view('ABCD')['host'] == 'Ann'
    assert store.all_codes() == ['ABCD']


def test_get_and_view_are_detached():
    store = RoomStore()
    store.insert(Room.create('ABCD', 'Ann'))
    copy = store.get('ABCD')
    copy.players.append('Mallory')
    view = store.view('ABCD')
    view['players'].append('Mallory')
    assert store.view('ABCD')['players'] == ['Ann']
    assert store.get('NOPE') is None
    assert store.view('NOPE') is None


def test_view_updates_only_on_upsert():
    store = RoomStore()
    store.insert(Room.create('ABCD', 'Ann'))
    with store.locked('ABCD') as room:
        room.players.append('Bob')
        room.scores['Bob'] = 0
        assert store.view('ABCD')['players'] == ['Ann']
        store.upsert(room)
    assert store.view('ABCD')['players'] == ['Ann', 'Bob']


def test_locked_unknown_room():
    store = RoomStore()
    with pytest.raises(RoomNotFound):
        with store.locked('NOPE'):
            pass


def test_remove_room():
    writer = RecordingWriter()
    store = RoomStore(writer=writer)
    store.insert(Room.create('ABCD', 'Ann'))
    store.remove('ABCD')
    assert 'ABCD' not in store
    assert writer.calls[-1] == ('ABCD', None)
    with pytest.raises(RoomNotFound):
        store.remove('ABCD')


def test_writer_receives_every_mutation():
    writer = RecordingWriter()
    store = RoomStore(writer=writer)
    store.insert(Room.create('ABCD', 'Ann'))
    with store.locked('ABCD') as room:
        room.categories = ['Food']
        store.upsert(room)
    assert [code for code, _ in writer.calls] == ['ABCD', 'ABCD']
    assert writer.calls[-1][1]['categories'] == ['Food']


def test_load_replaces_table_without_persisting():
    writer = RecordingWriter()
    store = RoomStore(writer=writer)
    store.insert(Room.create('OLD1', 'Ann'))
    count = store.load([Room.create('NEW1', 'Bob'), Room.create('NEW2', 'Cat')])
    assert count == 2
    assert sorted(store.all_codes()) == ['NEW1', 'NEW2']
    assert len(writer.calls) == 1


def test_room_lock_serializes_mutations():
    store = RoomStore()
    store.insert(Room(code='ABCD', host='Ann', players=['Ann'], scores={'Ann': 0},
                      phase=Phase.ROUND_ACTIVE, current_round=1, current_letter='A'))

    def bump():
        for _ in range(200):
            with store.locked('ABCD') as room:
                room.scores['Ann'] += 1
                store.upsert(room)

    threads = [threading.Thread(target=bump) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert store.view('ABCD')['scores']['Ann'] == 800


def test_room_from_dict_rejects_broken_invariants():
    view = Room.create('ABCD', 'Ann').to_dict()
    view['currentLetter'] = 'Q'
    with pytest.raises(ValueError):
        Room.from_dict(view)
    view = Room.create('ABCD', 'Ann').to_dict()
    view['scores'] = {}
    with pytest.raises(ValueError):
        Room.from_dict(view)
