"""
Unit tests for game state commands (commands.py).

Commands are applied directly to GameState values; no store involved.
"""

import pytest

from buzzboard.core import commands
from buzzboard.core.errors import ConflictError, InvalidStateError
from buzzboard.core.lobby import BuzzerEvent, Category, GameState, Player, Question

HOST = "host_abc"
NOW = 1_700_000_000_000


@pytest.fixture
def state():
    """Game state with a two-question board and three players."""
    return GameState(
        categories=[
            Category(
                id="cat-1",
                name="History",
                questions=[
                    Question(id="q-1", question="1066?", answer="Hastings", value=200),
                    Question(id="q-2", question="1492?", answer="Columbus", value=400),
                ],
            ),
        ],
        players=[
            Player(id="p1", name="Alice"),
            Player(id="p2", name="Bob"),
            Player(id="p3", name="Carol"),
        ],
    )


def apply(state, command, now=NOW):
    command.apply(state, now, HOST)
    return state


class TestQuestions:
    """Showing, answering and reopening questions."""

    def test_show_question(self, state):
        state.buzzer_queue = [BuzzerEvent("p1", "Alice", NOW - 10)]
        state.show_answer_to_players = True

        apply(state, commands.ShowQuestion("cat-1", "q-1"))

        assert state.current_question.id == "q-1"
        assert state.current_question.answer == "Hastings"
        assert state.buzzer_queue == []
        assert state.show_answer_to_players is False

    def test_show_answered_question_rejected(self, state):
        state.categories[0].questions[0].answered = True

        with pytest.raises(InvalidStateError):
            apply(state, commands.ShowQuestion("cat-1", "q-1"))

    def test_show_unknown_question_rejected(self, state):
        with pytest.raises(InvalidStateError):
            apply(state, commands.ShowQuestion("cat-1", "q-9"))
        with pytest.raises(InvalidStateError):
            apply(state, commands.ShowQuestion("cat-9", "q-1"))

    def test_mark_answered_resets_round(self, state):
        apply(state, commands.ShowQuestion("cat-1", "q-2"))
        apply(state, commands.ActivateBuzzer())
        state.buzzer_queue = [BuzzerEvent("p2", "Bob", NOW)]
        apply(state, commands.SetAnswerVisibility(True))
        apply(state, commands.StartTimer())

        apply(state, commands.MarkAnswered("cat-1", "q-2"))

        assert state.categories[0].questions[1].answered is True
        assert state.current_question is None
        assert state.buzzer_active is False
        assert state.buzzer_queue == []
        assert state.show_answer_to_players is False
        assert state.timer_end_at is None

    def test_close_question_does_not_mark_answered(self, state):
        apply(state, commands.ShowQuestion("cat-1", "q-1"))

        apply(state, commands.CloseQuestion())

        assert state.current_question is None
        assert state.categories[0].questions[0].answered is False

    def test_reopen_question(self, state):
        apply(state, commands.MarkAnswered("cat-1", "q-1"))
        apply(state, commands.ShowQuestion("cat-1", "q-2"))

        apply(state, commands.ReopenQuestion("cat-1", "q-1"))

        assert state.categories[0].questions[0].answered is False
        # Nothing else changes
        assert state.current_question.id == "q-2"

    def test_set_categories(self, state):
        new_board = [Category(id="cat-2", name="Art")]

        apply(state, commands.SetCategories(new_board))

        assert [c.id for c in state.categories] == ["cat-2"]


class TestScoresAndBuzzer:
    """Score deltas and buzzer switches."""

    def test_adjust_score_allows_negative(self, state):
        apply(state, commands.AdjustScore("p1", 200))
        apply(state, commands.AdjustScore("p1", -600))

        assert state.find_player("p1").score == -400

    def test_adjust_score_unknown_player(self, state):
        with pytest.raises(InvalidStateError):
            apply(state, commands.AdjustScore("p9", 100))

    def test_activate_clears_queue(self, state):
        state.buzzer_queue = [BuzzerEvent("p1", "Alice", NOW)]

        apply(state, commands.ActivateBuzzer())

        assert state.buzzer_active is True
        assert state.buzzer_queue == []

    def test_deactivate_keeps_queue(self, state):
        apply(state, commands.ActivateBuzzer())
        state.buzzer_queue = [BuzzerEvent("p1", "Alice", NOW)]

        apply(state, commands.DeactivateBuzzer())

        assert state.buzzer_active is False
        assert len(state.buzzer_queue) == 1

    def test_clear_buzzer(self, state):
        apply(state, commands.ActivateBuzzer())
        state.buzzer_queue = [BuzzerEvent("p1", "Alice", NOW)]

        apply(state, commands.ClearBuzzer())

        assert state.buzzer_queue == []
        assert state.buzzer_active is True


class TestTimer:

    def test_start_timer_default_duration(self, state):
        apply(state, commands.StartTimer())

        assert state.timer_end_at == NOW + 30_000

    def test_start_timer_custom_duration(self, state):
        apply(state, commands.StartTimer(duration=10))

        assert state.timer_duration == 10
        assert state.timer_end_at == NOW + 10_000

    def test_start_timer_rejects_non_positive(self, state):
        with pytest.raises(InvalidStateError):
            apply(state, commands.StartTimer(duration=0))

    def test_stop_timer(self, state):
        apply(state, commands.StartTimer())
        apply(state, commands.StopTimer())

        assert state.timer_end_at is None


class TestWinner:
    """Winner selection at the end of a game."""

    def test_highest_positive_score_wins(self, state):
        state.find_player("p1").score = 400
        state.find_player("p2").score = 1200
        state.find_player("p3").score = -200

        assert commands.determine_winner(state.players, HOST) == ("p2", [])

    def test_zero_score_never_wins(self, state):
        assert commands.determine_winner(state.players, HOST) == (None, [])

    def test_tie_declares_no_winner(self, state):
        state.find_player("p1").score = 800
        state.find_player("p3").score = 800

        assert commands.determine_winner(state.players, HOST) == (None, ["p1", "p3"])

    def test_host_cannot_win(self, state):
        state.players.append(Player(id=HOST, name="Host", score=5000))
        state.find_player("p1").score = 200

        assert commands.determine_winner(state.players, HOST) == ("p1", [])


class TestGamePhases:
    """Start, end and return-to-lobby transitions."""

    def test_start_game(self, state):
        apply(state, commands.StartGame())

        assert state.game_started is True
        with pytest.raises(InvalidStateError):
            apply(state, commands.StartGame())

    def test_end_game_records_winner(self, state):
        apply(state, commands.StartGame())
        apply(state, commands.ActivateBuzzer())
        state.find_player("p3").score = 600

        apply(state, commands.EndGame(), now=NOW + 1000)

        assert state.game_ended is True
        assert state.ended_at == NOW + 1000
        assert state.winner_id == "p3"
        assert state.buzzer_active is False

        with pytest.raises(InvalidStateError):
            apply(state, commands.EndGame())

    def test_return_to_lobby_resets_session(self, state):
        state.player_wins = {"p3": 2}
        apply(state, commands.StartGame())
        apply(state, commands.ShowQuestion("cat-1", "q-1"))
        state.find_player("p3").score = 600
        state.find_player("p1").score = -200
        apply(state, commands.EndGame())

        apply(state, commands.ReturnToLobby())

        assert state.player_wins == {"p3": 3}
        assert [p.score for p in state.players] == [0, 0, 0]
        assert [p.name for p in state.players] == ["Alice", "Bob", "Carol"]
        assert state.game_started is False
        assert state.game_ended is False
        assert state.winner_id is None
        assert state.current_question is None
        assert state.buzzer_queue == []
        assert state.timer_end_at is None

    def test_return_to_lobby_after_tie_awards_nothing(self, state):
        state.find_player("p1").score = 300
        state.find_player("p2").score = 300
        apply(state, commands.EndGame())

        apply(state, commands.ReturnToLobby())

        assert state.player_wins == {}
        assert state.tied_player_ids == []

    def test_return_to_lobby_requires_ended_game(self, state):
        apply(state, commands.StartGame())

        with pytest.raises(InvalidStateError):
            apply(state, commands.ReturnToLobby())

    def test_start_after_end_requires_return_to_lobby(self, state):
        apply(state, commands.StartGame())
        state.find_player("p1").score = 500
        apply(state, commands.EndGame())

        with pytest.raises(InvalidStateError):
            apply(state, commands.StartGame())
        assert state.game_ended is True
        assert state.winner_id == "p1"

        apply(state, commands.ReturnToLobby())
        apply(state, commands.StartGame())

        assert state.game_started is True
        assert state.winner_id is None
        assert state.player_wins == {"p1": 1}
        assert [p.score for p in state.players] == [0, 0, 0]


class TestPatchGameState:
    """Field-level replacement of game state."""

    def test_patch_replaces_only_given_fields(self, state):
        apply(state, commands.PatchGameState({
            "show_answer_to_players": True,
            "players": [{"id": "p1", "name": "Alice", "score": 900}],
        }))

        assert state.show_answer_to_players is True
        assert [(p.id, p.score) for p in state.players] == [("p1", 900)]
        assert len(state.categories) == 1

    def test_patch_activation_clears_queue(self, state):
        state.buzzer_queue = [BuzzerEvent("p1", "Alice", NOW)]

        apply(state, commands.PatchGameState({"buzzer_active": True}))

        assert state.buzzer_active is True
        assert state.buzzer_queue == []

    def test_patch_can_clear_queue(self, state):
        state.buzzer_queue = [BuzzerEvent("p1", "Alice", NOW)]

        apply(state, commands.PatchGameState({"buzzer_queue": []}))

        assert state.buzzer_queue == []

    def test_patch_rejects_client_buzz_entries(self, state):
        with pytest.raises(InvalidStateError):
            apply(state, commands.PatchGameState({
                "buzzer_queue": [{"player_id": "p1", "player_name": "Alice", "timestamp": 1}]
            }))

    def test_patch_rejects_unknown_fields(self, state):
        with pytest.raises(InvalidStateError):
            apply(state, commands.PatchGameState({"high_score": 1}))

    def test_patch_rejects_malformed_values(self, state):
        with pytest.raises(InvalidStateError):
            apply(state, commands.PatchGameState({"players": [{"name": "No id"}]}))

        # State untouched after a rejected patch
        assert len(state.players) == 3

    @pytest.mark.parametrize("name", ["player_wins", "buzzer_active", "game_started", "players", "timer_duration"])
    def test_patch_rejects_null_for_required_fields(self, state, name):
        state.player_wins = {"p1": 1}

        with pytest.raises(InvalidStateError):
            apply(state, commands.PatchGameState({name: None}))

        assert state.player_wins == {"p1": 1}
        assert len(state.players) == 3

    def test_patch_allows_null_for_optional_fields(self, state):
        apply(state, commands.ShowQuestion("cat-1", "q-1"))
        apply(state, commands.StartTimer())

        apply(state, commands.PatchGameState({"current_question": None, "timer_end_at": None}))

        assert state.current_question is None
        assert state.timer_end_at is None

    def test_patch_rejects_duplicate_player_names(self, state):
        with pytest.raises(ConflictError):
            apply(state, commands.PatchGameState({
                "players": [{"id": "a", "name": "Alice"}, {"id": "b", "name": "alice"}],
            }))

        assert [p.id for p in state.players] == ["p1", "p2", "p3"]

    def test_patch_rejects_duplicate_player_ids(self, state):
        with pytest.raises(ConflictError):
            apply(state, commands.PatchGameState({
                "players": [{"id": "p1", "name": "Alice"}, {"id": "p1", "name": "Bob"}],
            }))

    def test_patch_drops_buzzes_of_removed_players(self, state):
        state.buzzer_active = True
        state.buzzer_queue = [BuzzerEvent("p1", "Alice", NOW), BuzzerEvent("p2", "Bob", NOW + 5)]

        apply(state, commands.PatchGameState({
            "players": [{"id": "p2", "name": "Bob"}, {"id": "p3", "name": "Carol"}],
        }))

        assert [b.player_id for b in state.buzzer_queue] == ["p2"]
