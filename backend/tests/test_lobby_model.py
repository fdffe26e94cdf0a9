"""
Tests for the lobby document model (lobby.py).
"""

from buzzboard.core.lobby import (
    BuzzerEvent,
    Category,
    GameState,
    Lobby,
    Player,
    Question,
)


def make_lobby(**kwargs) -> Lobby:
    state = GameState(
        categories=[Category(id="c1", name="Science", questions=[
            Question(id="q1", question="H2O?", answer="Water", value=100, question_image_url="https://img/q1.png"),
        ])],
        players=[Player(id="host_1", name="Quizmaster"), Player(id="p1", name="Alice", score=300)],
        buzzer_active=True,
        buzzer_queue=[BuzzerEvent("p1", "Alice", 1_700_000_000_500)],
        player_wins={"p1": 2},
    )
    defaults = dict(code="K7QZ", host_id="host_1", game_state=state, password="secret",
                    created_at=1_700_000_000_000)
    defaults.update(kwargs)
    return Lobby(**defaults)


class TestLobbyDocument:

    def test_last_modified_defaults_to_created_at(self):
        lobby = make_lobby()

        assert lobby.version == 0
        assert lobby.last_modified == lobby.created_at

    def test_dict_roundtrip(self):
        lobby = make_lobby(lobby_name="Friday Quiz", version=4, last_modified=1_700_000_001_000)

        assert Lobby.from_dict(lobby.to_dict()) == lobby

    def test_from_dict_fills_defaults(self):
        lobby = Lobby.from_dict({"code": "K7QZ", "host_id": "host_1", "created_at": 5})

        assert lobby.is_active is True
        assert lobby.version == 0
        assert lobby.last_modified == 5
        assert lobby.game_state == GameState()


class TestPassword:

    def test_password_check(self):
        lobby = make_lobby()

        assert lobby.has_password is True
        assert lobby.check_password("secret")
        assert not lobby.check_password("Secret")
        assert not lobby.check_password(None)

    def test_open_lobby_accepts_anything(self):
        lobby = make_lobby(password=None)

        assert lobby.has_password is False
        assert lobby.check_password(None)
        assert lobby.check_password("whatever")


class TestPublicView:

    def test_password_hidden(self):
        data = make_lobby().to_public_dict()

        assert "password" not in data
        assert data["has_password"] is True

    def test_players_flag_host(self):
        players = make_lobby().to_public_dict()["game_state"]["players"]

        assert [(p["id"], p["is_host"]) for p in players] == [("host_1", True), ("p1", False)]

    def test_is_host_rejects_empty_token(self):
        lobby = make_lobby()

        assert lobby.is_host("host_1")
        assert not lobby.is_host("")
        assert not lobby.is_host(None)


class TestGameStateLookups:

    def test_find_player_by_name_is_case_insensitive(self):
        state = make_lobby().game_state

        assert state.find_player_by_name("alice").id == "p1"
        assert state.find_player_by_name("bob") is None

    def test_has_buzzed(self):
        state = make_lobby().game_state

        assert state.has_buzzed("p1")
        assert not state.has_buzzed("host_1")

    def test_find_question(self):
        category = make_lobby().game_state.find_category("c1")

        assert category.find_question("q1").answer == "Water"
        assert category.find_question("nope") is None
