"""
Game state commands.

Each command is a small dataclass whose apply() mutates a GameState that
the caller owns (the lobby service hands it a freshly loaded copy). Commands
never touch the store or the version counter; the lobby service wraps every
command in a versioned conditional write.

Validation failures raise InvalidStateError before anything is persisted.
"""

from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Optional

from buzzboard.core.errors import ConflictError, InvalidStateError
from buzzboard.core.lobby import Category, GameState, Player, Question


class GameCommand:
    """Base class for game state commands."""

    def apply(self, state: GameState, now: int, host_id: str) -> None:
        """
        Apply the command in place.

        Args:
            state: Game state to mutate
            now: Server time in epoch milliseconds
            host_id: Host token of the lobby (for host exclusion rules)
        """
        raise NotImplementedError


def _find_question(state: GameState, category_id: str, question_id: str) -> Question:
    category = state.find_category(category_id)
    question = category.find_question(question_id) if category else None
    if question is None:
        raise InvalidStateError(f"Question {question_id} not found in category {category_id}")
    return question


def _reset_round(state: GameState) -> None:
    """Clear everything tied to the question currently on screen."""
    state.current_question = None
    state.buzzer_active = False
    state.buzzer_queue = []
    state.show_answer_to_players = False
    state.timer_end_at = None


@dataclass
class SetCategories(GameCommand):
    categories: List[Category]

    def apply(self, state: GameState, now: int, host_id: str) -> None:
        state.categories = list(self.categories)


@dataclass
class ShowQuestion(GameCommand):
    """Put a question in front of the players and open a fresh buzz-in window."""
    category_id: str
    question_id: str

    def apply(self, state: GameState, now: int, host_id: str) -> None:
        question = _find_question(state, self.category_id, self.question_id)
        if question.answered:
            raise InvalidStateError(f"Question {self.question_id} was already answered")

        state.current_question = Question(**vars(question))
        state.buzzer_queue = []
        state.show_answer_to_players = False


@dataclass
class CloseQuestion(GameCommand):
    """Dismiss the current question without marking it answered."""

    def apply(self, state: GameState, now: int, host_id: str) -> None:
        _reset_round(state)


@dataclass
class MarkAnswered(GameCommand):
    category_id: str
    question_id: str

    def apply(self, state: GameState, now: int, host_id: str) -> None:
        question = _find_question(state, self.category_id, self.question_id)
        question.answered = True
        _reset_round(state)


@dataclass
class ReopenQuestion(GameCommand):
    category_id: str
    question_id: str

    def apply(self, state: GameState, now: int, host_id: str) -> None:
        _find_question(state, self.category_id, self.question_id).answered = False


@dataclass
class AdjustScore(GameCommand):
    """Add a signed delta to a player's score. Negative scores are valid."""
    player_id: str
    delta: int

    def apply(self, state: GameState, now: int, host_id: str) -> None:
        player = state.find_player(self.player_id)
        if player is None:
            raise InvalidStateError(f"Player {self.player_id} not in lobby")
        player.score += self.delta


@dataclass
class ActivateBuzzer(GameCommand):
    """Open a new buzz-in round. The queue always starts empty."""

    def apply(self, state: GameState, now: int, host_id: str) -> None:
        state.buzzer_queue = []
        state.buzzer_active = True


@dataclass
class DeactivateBuzzer(GameCommand):
    """Stop accepting buzzes; the queue is kept for the host to inspect."""

    def apply(self, state: GameState, now: int, host_id: str) -> None:
        state.buzzer_active = False


@dataclass
class ClearBuzzer(GameCommand):

    def apply(self, state: GameState, now: int, host_id: str) -> None:
        state.buzzer_queue = []


@dataclass
class StartTimer(GameCommand):
    duration: Optional[int] = None  # seconds; None keeps the configured duration

    def apply(self, state: GameState, now: int, host_id: str) -> None:
        if self.duration is not None:
            if self.duration <= 0:
                raise InvalidStateError("Timer duration must be positive")
            state.timer_duration = self.duration
        state.timer_end_at = now + state.timer_duration * 1000


@dataclass
class StopTimer(GameCommand):

    def apply(self, state: GameState, now: int, host_id: str) -> None:
        state.timer_end_at = None


@dataclass
class SetAnswerVisibility(GameCommand):
    visible: bool

    def apply(self, state: GameState, now: int, host_id: str) -> None:
        state.show_answer_to_players = self.visible


@dataclass
class StartGame(GameCommand):

    def apply(self, state: GameState, now: int, host_id: str) -> None:
        if state.game_ended:
            raise InvalidStateError("Game has ended; return to lobby first")
        if state.game_started:
            raise InvalidStateError("Game already started")
        state.game_started = True


def determine_winner(players: List[Player], host_id: str) -> tuple:
    """
    Pick the winner of a finished game.

    Only non-host players with a strictly positive score are eligible. If
    several players share the top score there is no winner and the tied
    players are reported instead.

    Args:
        players: Lobby roster
        host_id: Host token, excluded from winning

    Returns:
        Tuple of (winner_id or None, list of tied player ids)
    """
    eligible = [p for p in players if p.id != host_id and p.score > 0]
    if not eligible:
        return None, []

    top_score = max(p.score for p in eligible)
    leaders = [p.id for p in eligible if p.score == top_score]
    if len(leaders) > 1:
        return None, leaders
    return leaders[0], []


@dataclass
class EndGame(GameCommand):

    def apply(self, state: GameState, now: int, host_id: str) -> None:
        if state.game_ended:
            raise InvalidStateError("Game already ended")

        winner_id, tied = determine_winner(state.players, host_id)
        state.winner_id = winner_id
        state.tied_player_ids = tied
        state.game_ended = True
        state.ended_at = now
        state.buzzer_active = False
        state.timer_end_at = None


@dataclass
class ReturnToLobby(GameCommand):
    """Reset the session after a finished game, keeping roster and win totals."""

    def apply(self, state: GameState, now: int, host_id: str) -> None:
        if not state.game_ended:
            raise InvalidStateError("Game has not ended")

        if state.winner_id:
            state.player_wins[state.winner_id] = state.player_wins.get(state.winner_id, 0) + 1

        for player in state.players:
            player.score = 0

        _reset_round(state)
        state.game_started = False
        state.game_ended = False
        state.ended_at = None
        state.winner_id = None
        state.tied_player_ids = []


PATCHABLE_FIELDS = {f.name for f in fields(GameState)}

# Fields that may be sent as null
NULLABLE_FIELDS = {"current_question", "ended_at", "winner_id", "timer_end_at"}


def _check_roster(players: List[Player]) -> None:
    """Player ids and names (case-insensitive) must be unique."""
    ids = set()
    names = set()
    for player in players:
        name = player.name.strip().lower()
        if player.id in ids:
            raise ConflictError(f"Duplicate player id {player.id}")
        if name in names:
            raise ConflictError(f"Duplicate player name {player.name}")
        ids.add(player.id)
        names.add(name)


@dataclass
class PatchGameState(GameCommand):
    """
    Replace individual game state fields.

    Values are in document form (as produced by GameState.to_dict()). The
    buzzer queue can only be cleared this way: buzz timestamps are assigned
    by the server, never supplied by clients.
    """
    values: Dict[str, Any] = field(default_factory=dict)

    def apply(self, state: GameState, now: int, host_id: str) -> None:
        unknown = set(self.values) - PATCHABLE_FIELDS
        if unknown:
            raise InvalidStateError(f"Unknown game state fields: {', '.join(sorted(unknown))}")
        nulls = {name for name, value in self.values.items() if value is None} - NULLABLE_FIELDS
        if nulls:
            raise InvalidStateError(f"Game state fields cannot be null: {', '.join(sorted(nulls))}")
        if self.values.get("buzzer_queue"):
            raise InvalidStateError("Buzzer queue can only be cleared, not replaced")

        was_active = state.buzzer_active
        merged = {**state.to_dict(), **self.values}
        try:
            patched = GameState.from_dict(merged)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise InvalidStateError(f"Malformed game state: {str(e)}") from e

        if "players" in self.values:
            _check_roster(patched.players)
            roster = {p.id for p in patched.players}
            patched.buzzer_queue = [b for b in patched.buzzer_queue if b.player_id in roster]

        if patched.buzzer_active and not was_active:
            patched.buzzer_queue = []

        for name in PATCHABLE_FIELDS:
            setattr(state, name, getattr(patched, name))
