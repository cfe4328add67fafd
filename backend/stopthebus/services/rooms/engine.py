"""Room state machine.

Phases: lobby -> round_active <-> round_complete -> finished. Every mutating
operation runs under the room's lock, validates fully before touching the
room, upserts it into the store and returns an ``Outcome`` with the events
to broadcast.
"""
import logging
import random
import string
from typing import Any, Dict, List, Mapping, Optional

from . import events
from .codes import reserve_room_code
from .errors import (
    AlreadyStarted,
    DuplicatePlayer,
    DuplicateSubmission,
    Forbidden,
    GameFinished,
    GameNotStarted,
    IncompleteAnswers,
    InvalidInput,
    NoCategories,
    RoomNotFound,
    RoundNotActive,
    UnknownPlayer,
)
from .events import Outcome
from .room import Phase, Room
from .store import RoomStore

logger = logging.getLogger(__name__)

LETTERS = string.ascii_uppercase


def letter_mismatches(answers: Mapping[str, str], letter: Optional[str]) -> List[str]:
    """Categories whose answer does not start with ``letter``.

    The first whitespace-separated token containing a letter is checked at its
    first alphabetic character, case-insensitively. Advisory only: the engine
    accepts mismatching answers and reports them back to the client.
    """
    if not letter:
        return []
    wanted = letter.upper()
    mismatched = []
    for category, text in answers.items():
        first = ''
        for token in text.split():
            first = next((ch for ch in token if ch.isalpha()), '')
            if first:
                break
        if first.upper() != wanted:
            mismatched.append(category)
    return mismatched


class RoomEngine:

    def __init__(self, store: RoomStore, rng: Optional[random.Random] = None, max_rounds=0,
                 code_length=4, code_attempts=50, max_name_length=32):
        self.store = store
        self.rng = rng or random.Random()
        self.max_rounds = max_rounds
        self.code_length = code_length
        self.code_attempts = code_attempts
        self.max_name_length = max_name_length

    # ---- helpers ----

    def _clean_name(self, name, field='name') -> str:
        if not isinstance(name, str) or not name.strip():
            raise InvalidInput(f"{field} is required")
        name = name.strip()
        if len(name) > self.max_name_length:
            raise InvalidInput(f"{field} must be at most {self.max_name_length} characters")
        return name

    @staticmethod
    def _require_host(room: Room, requester) -> None:
        if requester != room.host:
            raise Forbidden(f"Only the host ({room.host}) may do that")

    @staticmethod
    def _require_in_game(room: Room) -> None:
        if room.phase == Phase.LOBBY:
            raise GameNotStarted()
        if room.phase == Phase.FINISHED:
            raise GameFinished()

    def _draw_letter(self) -> str:
        return self.rng.choice(LETTERS)

    def _begin_round(self, room: Room, number: int) -> None:
        room.current_round = number
        room.current_letter = self._draw_letter()
        room.submissions = {}
        room.phase = Phase.ROUND_ACTIVE
        logger.info(f"[round-start] room={room.code} round={number} letter={room.current_letter}")

    @staticmethod
    def _finish(room: Room) -> None:
        room.phase = Phase.FINISHED
        room.current_letter = None
        logger.info(f"[finish] room={room.code} finished at round={room.current_round}")

    # ---- lobby ----

    def create_room(self, host_name, max_rounds=None) -> Outcome:
        host = self._clean_name(host_name, 'hostName')
        if max_rounds is None:
            max_rounds = self.max_rounds
        if isinstance(max_rounds, bool) or not isinstance(max_rounds, int) or max_rounds < 0:
            raise InvalidInput('maxRounds must be a non-negative integer')

        def _claim(code):
            return self.store.insert(Room.create(code, host, max_rounds))

        code = reserve_room_code(_claim, length=self.code_length, max_attempts=self.code_attempts, rng=self.rng)
        logger.info(f"[room-create] room={code} host={host} max_rounds={max_rounds}")
        return Outcome(code, {'code': code, 'host': host})

    def join_room(self, code, player_name) -> Outcome:
        name = self._clean_name(player_name, 'playerName')
        with self.store.locked(code) as room:
            if room.phase != Phase.LOBBY:
                raise AlreadyStarted(f"Room {code} is not accepting players")
            if room.has_player(name):
                raise DuplicatePlayer(name)
            room.players.append(name)
            room.scores[name] = 0
            self.store.upsert(room)
            logger.info(f"[join] room={code} player={name} players={len(room.players)}")
            return Outcome(code, {
                'players': list(room.players),
                'scores': dict(room.scores),
                'host': room.host,
                'gameStarted': room.game_started,
            }, [events.player_joined(room)])

    def set_categories(self, code, requester, categories) -> Outcome:
        with self.store.locked(code) as room:
            self._require_host(room, requester)
            if room.phase != Phase.LOBBY:
                raise AlreadyStarted('Categories cannot change once the game has started')
            if not isinstance(categories, list) or not categories:
                raise InvalidInput('categories must be a non-empty list')
            cleaned = []
            for category in categories:
                if not isinstance(category, str) or not category.strip():
                    raise InvalidInput('categories must not contain blank entries')
                if category.strip() not in cleaned:
                    cleaned.append(category.strip())
            room.categories = cleaned
            self.store.upsert(room)
            return Outcome(code, {'ok': True, 'categories': list(cleaned)}, [events.categories_updated(room)])

    def start_game(self, code, requester) -> Outcome:
        with self.store.locked(code) as room:
            self._require_host(room, requester)
            if room.phase != Phase.LOBBY:
                raise AlreadyStarted()
            if not room.categories:
                raise NoCategories()
            room.scores = {p: 0 for p in room.players}
            self._begin_round(room, 1)
            self.store.upsert(room)
            logger.info(f"[game-start] room={code} players={len(room.players)} categories={len(room.categories)}")
            snapshot = room.to_dict()
            return Outcome(code, {'ok': True, 'room': snapshot}, [
                events.game_started(room),
                events.round_started(room),
            ])

    # ---- rounds ----

    def submit_answers(self, code, player_name, answers) -> Outcome:
        with self.store.locked(code) as room:
            if room.phase == Phase.ROUND_COMPLETE:
                raise RoundNotActive()
            self._require_in_game(room)
            if not room.has_player(player_name):
                raise UnknownPlayer(player_name)
            if player_name in room.submissions:
                raise DuplicateSubmission(player_name)
            if not isinstance(answers, Mapping):
                raise InvalidInput('answers must be an object')
            missing = [
                c for c in room.categories
                if not isinstance(answers.get(c), str) or not answers[c].strip()
            ]
            if missing:
                raise IncompleteAnswers(missing)

            accepted = {c: answers[c].strip() for c in room.categories}
            room.submissions[player_name] = accepted
            emitted = [events.submissions_updated(room)]
            if room.all_submitted():
                room.phase = Phase.ROUND_COMPLETE
                emitted.append(events.round_completed(room))
                logger.info(f"[round-complete] room={code} round={room.current_round} all submitted")
            self.store.upsert(room)
            return Outcome(code, {
                'ok': True,
                'letterMismatches': letter_mismatches(accepted, room.current_letter),
                'roundComplete': room.phase == Phase.ROUND_COMPLETE,
            }, emitted)

    def complete_round(self, code, requester) -> Outcome:
        with self.store.locked(code) as room:
            self._require_host(room, requester)
            self._require_in_game(room)
            if room.phase != Phase.ROUND_ACTIVE:
                raise RoundNotActive()
            room.phase = Phase.ROUND_COMPLETE
            self.store.upsert(room)
            logger.info(f"[round-complete] room={code} round={room.current_round} forced by host")
            return Outcome(code, {
                'ok': True,
                'currentRound': room.current_round,
                'submissions': room.to_dict()['submissions'],
            }, [events.round_completed(room)])

    def advance_round(self, code, requester) -> Outcome:
        with self.store.locked(code) as room:
            self._require_host(room, requester)
            self._require_in_game(room)
            prev_round = room.current_round
            emitted = []
            if room.phase == Phase.ROUND_ACTIVE:
                # Forced completion: publish what was submitted before it is cleared
                emitted.append(events.round_completed(room))
            if room.is_last_round():
                self._finish(room)
                emitted.append(events.game_finished(room))
            else:
                self._begin_round(room, prev_round + 1)
                emitted.append(events.round_started(room))
            self.store.upsert(room)
            logger.info(f"[next_round] room={code} advance round {prev_round} -> {room.current_round} phase={room.phase.value}")
            return Outcome(code, {
                'currentRound': room.current_round,
                'currentLetter': room.current_letter,
                'phase': room.phase.value,
            }, emitted)

    def end_game(self, code, requester) -> Outcome:
        with self.store.locked(code) as room:
            self._require_host(room, requester)
            self._require_in_game(room)
            self._finish(room)
            self.store.upsert(room)
            return Outcome(code, {'ok': True, 'scores': dict(room.scores)}, [events.game_finished(room)])

    def expire_round(self, code, round_number) -> Outcome:
        """Timer-driven completion; a no-op if the round already moved on."""
        with self.store.locked(code) as room:
            if room.phase != Phase.ROUND_ACTIVE or room.current_round != round_number:
                return Outcome(code, {'expired': False})
            room.phase = Phase.ROUND_COMPLETE
            self.store.upsert(room)
            logger.info(f"[round-expire] room={code} round={round_number}")
            return Outcome(code, {'expired': True}, [events.round_completed(room)])

    # ---- scoring ----

    def adjust_score(self, code, requester, target_player, delta) -> Outcome:
        with self.store.locked(code) as room:
            self._require_host(room, requester)
            # Final-round answers may still be scored after the game finishes
            if room.phase == Phase.LOBBY:
                raise GameNotStarted()
            if not room.has_player(target_player):
                raise UnknownPlayer(target_player)
            if isinstance(delta, bool) or not isinstance(delta, int):
                raise InvalidInput('delta must be an integer')
            room.scores[target_player] += delta
            self.store.upsert(room)
            logger.info(f"[score] room={code} player={target_player} delta={delta:+d} total={room.scores[target_player]}")
            return Outcome(code, {'scores': dict(room.scores)}, [events.scores_updated(room)])

    # ---- lifecycle and reads ----

    def close_room(self, code) -> Outcome:
        self.store.remove(code)
        logger.info(f"[room-close] room={code}")
        return Outcome(code, {'ok': True}, [events.room_closed(code)])

    def close_idle_room(self, code, is_idle) -> Optional[Outcome]:
        """Close ``code`` only if ``is_idle()`` still holds under the room lock."""
        with self.store.locked(code):
            if not is_idle():
                return None
            return self.close_room(code)

    def get_room_view(self, code) -> Dict[str, Any]:
        view = self.store.view(code)
        if view is None:
            raise RoomNotFound(code)
        return view

    def get_submissions(self, code) -> Dict[str, Dict[str, str]]:
        return self.get_room_view(code)['submissions']
