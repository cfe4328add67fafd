import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class Phase(str, Enum):
    LOBBY = 'lobby'
    ROUND_ACTIVE = 'round_active'
    ROUND_COMPLETE = 'round_complete'
    FINISHED = 'finished'


LETTER_PHASES = (Phase.ROUND_ACTIVE, Phase.ROUND_COMPLETE)


@dataclass
class Room:
    """One game session. Mutated only by the engine, under the room's lock."""
    code: str
    host: str
    players: List[str] = field(default_factory=list)
    categories: List[str] = field(default_factory=list)
    phase: Phase = Phase.LOBBY
    current_round: int = 0
    current_letter: Optional[str] = None
    submissions: Dict[str, Dict[str, str]] = field(default_factory=dict)
    scores: Dict[str, int] = field(default_factory=dict)
    max_rounds: int = 0
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)

    @classmethod
    def create(cls, code: str, host: str, max_rounds: int = 0) -> 'Room':
        return cls(code=code, host=host, players=[host], scores={host: 0}, max_rounds=max_rounds)

    @property
    def game_started(self) -> bool:
        return self.phase != Phase.LOBBY

    def has_player(self, name: str) -> bool:
        return name in self.scores

    def all_submitted(self) -> bool:
        return all(p in self.submissions for p in self.players)

    def is_last_round(self) -> bool:
        return bool(self.max_rounds) and self.current_round >= self.max_rounds

    def touch(self) -> None:
        self.updated_at = time.time()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'code': self.code,
            'host': self.host,
            'players': list(self.players),
            'categories': list(self.categories),
            'phase': self.phase.value,
            'gameStarted': self.game_started,
            'currentRound': self.current_round,
            'currentLetter': self.current_letter,
            'maxRounds': self.max_rounds,
            'submissions': {p: dict(a) for p, a in self.submissions.items()},
            'submitted': [p for p in self.players if p in self.submissions],
            'scores': dict(self.scores),
            'createdAt': self.created_at,
            'updatedAt': self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Room':
        """Rebuild a room from its snapshot; raises ValueError/KeyError/TypeError if corrupt."""
        room = cls(
            code=str(data['code']),
            host=str(data['host']),
            players=[str(p) for p in data['players']],
            categories=[str(c) for c in data.get('categories', [])],
            phase=Phase(data['phase']),
            current_round=int(data.get('currentRound', 0)),
            current_letter=data.get('currentLetter'),
            submissions={
                str(p): {str(c): str(t) for c, t in answers.items()}
                for p, answers in (data.get('submissions') or {}).items()
            },
            scores={str(p): int(s) for p, s in (data.get('scores') or {}).items()},
            max_rounds=int(data.get('maxRounds', 0)),
            created_at=float(data.get('createdAt', time.time())),
            updated_at=float(data.get('updatedAt', time.time())),
        )
        room.check_invariants()
        return room

    def check_invariants(self) -> None:
        if len(set(self.players)) != len(self.players):
            raise ValueError(f"room {self.code}: duplicate players")
        if self.host not in self.players:
            raise ValueError(f"room {self.code}: host {self.host} is not a player")
        if set(self.scores) != set(self.players):
            raise ValueError(f"room {self.code}: scores do not match players")
        if not set(self.submissions) <= set(self.players):
            raise ValueError(f"room {self.code}: submissions from unknown players")
        has_letter = self.current_letter is not None
        if has_letter != (self.phase in LETTER_PHASES):
            raise ValueError(f"room {self.code}: letter {self.current_letter!r} in phase {self.phase.value}")
