"""
Buzzer fairness rules.

Who buzzed first is decided by the server alone: each accepted buzz is
stamped with server time at the moment the write is attempted, and the
queue is kept sorted by that timestamp. Client clocks and request arrival
order play no part in the ranking.
"""

from dataclasses import dataclass
from typing import List, Optional

from buzzboard.core.commands import GameCommand
from buzzboard.core.errors import ConflictError, InvalidStateError
from buzzboard.core.lobby import BuzzerEvent, GameState


def append_buzz(state: GameState, event: BuzzerEvent) -> None:
    """Append a buzz and keep the queue ordered by server timestamp."""
    state.buzzer_queue.append(event)
    # sort() is stable, so equal timestamps keep insertion order
    state.buzzer_queue.sort(key=lambda b: b.timestamp)


def queue_position(queue: List[BuzzerEvent], player_id: str) -> int:
    """
    1-based rank of a player in the buzzer queue.

    Returns:
        Position, or 0 if the player has not buzzed
    """
    ordered = sorted(queue, key=lambda b: b.timestamp)
    for index, event in enumerate(ordered):
        if event.player_id == player_id:
            return index + 1
    return 0


@dataclass
class Buzz(GameCommand):
    """
    Register a buzz for a player.

    After a successful apply, `event` holds the accepted BuzzerEvent. The
    player name is taken from the roster; the request's name is only used
    if the roster entry has none.
    """
    player_id: str
    player_name: str = ""
    event: Optional[BuzzerEvent] = None

    def apply(self, state: GameState, now: int, host_id: str) -> None:
        if not state.buzzer_active:
            raise InvalidStateError("Buzzer not active")

        if state.has_buzzed(self.player_id):
            raise ConflictError("Already buzzed")

        player = state.find_player(self.player_id)
        if player is None:
            raise InvalidStateError("Player not in lobby")

        self.event = BuzzerEvent(
            player_id=self.player_id,
            player_name=player.name or self.player_name,
            timestamp=now,
        )
        append_buzz(state, self.event)
