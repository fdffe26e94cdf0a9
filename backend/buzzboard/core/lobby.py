"""
Lobby system data structures for trivia game sessions.

This module defines the lobby record and its embedded game state, along
with conversion to and from the JSON document kept in the lobby store.
"""

from dataclasses import dataclass, field, asdict
from typing import Dict, List, Optional
import time


def now_ms() -> int:
    """Current server time in epoch milliseconds."""
    return int(time.time() * 1000)


@dataclass
class Question:
    """A single clue on the board."""
    id: str
    question: str
    answer: str
    value: int
    answered: bool = False
    question_image_url: Optional[str] = None
    answer_image_url: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "Question":
        return cls(
            id=data["id"],
            question=data.get("question", ""),
            answer=data.get("answer", ""),
            value=int(data.get("value", 0)),
            answered=bool(data.get("answered", False)),
            question_image_url=data.get("question_image_url"),
            answer_image_url=data.get("answer_image_url"),
        )


@dataclass
class Category:
    """A board column; questions are ordered by ascending value."""
    id: str
    name: str
    questions: List[Question] = field(default_factory=list)

    def find_question(self, question_id: str) -> Optional[Question]:
        for question in self.questions:
            if question.id == question_id:
                return question
        return None

    @classmethod
    def from_dict(cls, data: dict) -> "Category":
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            questions=[Question.from_dict(q) for q in data.get("questions", [])],
        )


@dataclass
class Player:
    """A joined contestant. The host never appears in the roster."""
    id: str
    name: str
    score: int = 0

    @classmethod
    def from_dict(cls, data: dict) -> "Player":
        return cls(id=data["id"], name=data["name"], score=int(data.get("score", 0)))


@dataclass
class BuzzerEvent:
    """One accepted buzz; timestamp is always assigned by the server."""
    player_id: str
    player_name: str
    timestamp: int

    @classmethod
    def from_dict(cls, data: dict) -> "BuzzerEvent":
        return cls(
            player_id=data["player_id"],
            player_name=data.get("player_name", ""),
            timestamp=int(data["timestamp"]),
        )


@dataclass
class GameState:
    """Mutable session state embedded in a lobby."""
    categories: List[Category] = field(default_factory=list)
    players: List[Player] = field(default_factory=list)
    current_question: Optional[Question] = None
    buzzer_active: bool = False
    buzzer_queue: List[BuzzerEvent] = field(default_factory=list)
    game_started: bool = False
    game_ended: bool = False
    ended_at: Optional[int] = None
    winner_id: Optional[str] = None
    tied_player_ids: List[str] = field(default_factory=list)
    player_wins: Dict[str, int] = field(default_factory=dict)
    timer_end_at: Optional[int] = None
    timer_duration: int = 30
    show_answer_to_players: bool = False

    def find_player(self, player_id: str) -> Optional[Player]:
        for player in self.players:
            if player.id == player_id:
                return player
        return None

    def find_player_by_name(self, name: str) -> Optional[Player]:
        """Case-insensitive lookup; names are unique within a lobby."""
        wanted = name.strip().lower()
        for player in self.players:
            if player.name.lower() == wanted:
                return player
        return None

    def find_category(self, category_id: str) -> Optional[Category]:
        for category in self.categories:
            if category.id == category_id:
                return category
        return None

    def has_buzzed(self, player_id: str) -> bool:
        return any(event.player_id == player_id for event in self.buzzer_queue)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "GameState":
        current = data.get("current_question")
        return cls(
            categories=[Category.from_dict(c) for c in data.get("categories", [])],
            players=[Player.from_dict(p) for p in data.get("players", [])],
            current_question=Question.from_dict(current) if current else None,
            buzzer_active=bool(data.get("buzzer_active", False)),
            buzzer_queue=[BuzzerEvent.from_dict(b) for b in data.get("buzzer_queue", [])],
            game_started=bool(data.get("game_started", False)),
            game_ended=bool(data.get("game_ended", False)),
            ended_at=data.get("ended_at"),
            winner_id=data.get("winner_id"),
            tied_player_ids=list(data.get("tied_player_ids", [])),
            player_wins={k: int(v) for k, v in data.get("player_wins", {}).items()},
            timer_end_at=data.get("timer_end_at"),
            timer_duration=int(data.get("timer_duration", 30)),
            show_answer_to_players=bool(data.get("show_answer_to_players", False)),
        )


@dataclass
class Lobby:
    """Main lobby record, stored as one document per lobby code."""
    code: str  # Shareable code like "K7QZ"
    host_id: str  # Bearer token of the creator
    game_state: GameState = field(default_factory=GameState)
    lobby_name: Optional[str] = None
    password: Optional[str] = None
    is_active: bool = True
    created_at: int = field(default_factory=now_ms)
    version: int = 0
    last_modified: int = 0

    def __post_init__(self):
        if not self.last_modified:
            self.last_modified = self.created_at

    @property
    def has_password(self) -> bool:
        return bool(self.password)

    def is_host(self, host_id: Optional[str]) -> bool:
        """Check if the given token is the lobby host."""
        return bool(host_id) and host_id == self.host_id

    def check_password(self, password: Optional[str]) -> bool:
        """Lobbies without a password accept anything."""
        if not self.password:
            return True
        return password == self.password

    def to_dict(self) -> dict:
        return asdict(self)

    def to_public_dict(self) -> dict:
        """
        Lobby as seen by clients.

        The password never leaves the server; only has_password is exposed.
        Players carry a derived is_host flag.
        """
        data = self.to_dict()
        del data["password"]
        data["has_password"] = self.has_password
        for player in data["game_state"]["players"]:
            player["is_host"] = player["id"] == self.host_id
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Lobby":
        return cls(
            code=data["code"],
            host_id=data["host_id"],
            game_state=GameState.from_dict(data.get("game_state") or {}),
            lobby_name=data.get("lobby_name"),
            password=data.get("password"),
            is_active=bool(data.get("is_active", True)),
            created_at=int(data["created_at"]),
            version=int(data.get("version", 0)),
            last_modified=int(data.get("last_modified") or data["created_at"]),
        )
