"""Events produced by room operations.

Engine operations never talk to sockets. They return an ``Outcome`` carrying
the caller's result and the events to publish to the room's subscribers.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List

from .room import Room

PLAYER_JOINED = 'playerJoined'
CATEGORIES_UPDATED = 'categoriesUpdated'
GAME_STARTED = 'gameStarted'
ROUND_STARTED = 'roundStarted'
SUBMISSIONS_UPDATED = 'submissionsUpdated'
ROUND_COMPLETED = 'roundCompleted'
SCORES_UPDATED = 'scoresUpdated'
GAME_FINISHED = 'gameFinished'
ROOM_CLOSED = 'roomClosed'


@dataclass
class RoomEvent:
    name: str
    payload: Dict[str, Any]


@dataclass
class Outcome:
    code: str
    result: Dict[str, Any]
    events: List[RoomEvent] = field(default_factory=list)

    def names(self) -> List[str]:
        return [e.name for e in self.events]


def player_joined(room: Room) -> RoomEvent:
    return RoomEvent(PLAYER_JOINED, {'players': list(room.players), 'scores': dict(room.scores)})


def categories_updated(room: Room) -> RoomEvent:
    return RoomEvent(CATEGORIES_UPDATED, {'categories': list(room.categories)})


def game_started(room: Room) -> RoomEvent:
    return RoomEvent(GAME_STARTED, {'room': room.to_dict()})


def round_started(room: Room) -> RoomEvent:
    return RoomEvent(ROUND_STARTED, {'letter': room.current_letter, 'currentRound': room.current_round})


def submissions_updated(room: Room) -> RoomEvent:
    return RoomEvent(SUBMISSIONS_UPDATED, {'submissions': room.to_dict()['submissions']})


def round_completed(room: Room) -> RoomEvent:
    return RoomEvent(ROUND_COMPLETED, {
        'currentRound': room.current_round,
        'submissions': room.to_dict()['submissions'],
    })


def scores_updated(room: Room) -> RoomEvent:
    return RoomEvent(SCORES_UPDATED, {'scores': dict(room.scores)})


def game_finished(room: Room) -> RoomEvent:
    return RoomEvent(GAME_FINISHED, {'scores': dict(room.scores), 'currentRound': room.current_round})


def room_closed(code: str) -> RoomEvent:
    return RoomEvent(ROOM_CLOSED, {'code': code})
