"""
REST API for in-game state: board, scores, buzzer and timer.

Clients poll GET /lobbies/{code}/version and fetch the state from here
only when the version changes.
"""

from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
import logging

from buzzboard.core import commands
from buzzboard.core.lobby import Category
from buzzboard.core.lobby_service import LobbyService, get_lobby_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/lobbies", tags=["game"])


# ===== Pydantic Models =====

class QuestionPayload(BaseModel):
    id: str
    question: str = ""
    answer: str = ""
    value: int = 0
    answered: bool = False
    question_image_url: Optional[str] = None
    answer_image_url: Optional[str] = None


class CategoryPayload(BaseModel):
    id: str
    name: str = ""
    questions: List[QuestionPayload] = Field(default_factory=list)


class PlayerPayload(BaseModel):
    id: str
    name: str
    score: int = 0


class GameStatePatch(BaseModel):
    """
    Game state fields to replace. Omitted fields are left untouched.

    buzzer_queue may only be sent as an empty list (to clear it).
    """
    categories: Optional[List[CategoryPayload]] = None
    players: Optional[List[PlayerPayload]] = None
    current_question: Optional[QuestionPayload] = None
    buzzer_active: Optional[bool] = None
    buzzer_queue: Optional[List[Dict[str, Any]]] = None
    game_started: Optional[bool] = None
    game_ended: Optional[bool] = None
    ended_at: Optional[int] = None
    winner_id: Optional[str] = None
    tied_player_ids: Optional[List[str]] = None
    player_wins: Optional[Dict[str, int]] = None
    timer_end_at: Optional[int] = None
    timer_duration: Optional[int] = Field(default=None, gt=0)
    show_answer_to_players: Optional[bool] = None


class SetGameStateRequest(BaseModel):
    game_state: GameStatePatch


class SetCategoriesAction(BaseModel):
    action: Literal["set_categories"]
    categories: List[CategoryPayload]

    def to_command(self) -> commands.GameCommand:
        return commands.SetCategories(
            categories=[Category.from_dict(c.model_dump()) for c in self.categories]
        )


class QuestionAction(BaseModel):
    action: Literal["show_question", "mark_answered", "reopen_question"]
    category_id: str
    question_id: str

    def to_command(self) -> commands.GameCommand:
        command_class = {
            "show_question": commands.ShowQuestion,
            "mark_answered": commands.MarkAnswered,
            "reopen_question": commands.ReopenQuestion,
        }[self.action]
        return command_class(category_id=self.category_id, question_id=self.question_id)


class AdjustScoreAction(BaseModel):
    action: Literal["adjust_score"]
    player_id: str
    delta: int

    def to_command(self) -> commands.GameCommand:
        return commands.AdjustScore(player_id=self.player_id, delta=self.delta)


class StartTimerAction(BaseModel):
    action: Literal["start_timer"]
    duration: Optional[int] = Field(default=None, gt=0, description="Seconds; keeps current duration if omitted")

    def to_command(self) -> commands.GameCommand:
        return commands.StartTimer(duration=self.duration)


class AnswerVisibilityAction(BaseModel):
    action: Literal["set_answer_visibility"]
    visible: bool

    def to_command(self) -> commands.GameCommand:
        return commands.SetAnswerVisibility(visible=self.visible)


SIMPLE_COMMANDS = {
    "close_question": commands.CloseQuestion,
    "activate_buzzer": commands.ActivateBuzzer,
    "deactivate_buzzer": commands.DeactivateBuzzer,
    "clear_buzzer": commands.ClearBuzzer,
    "stop_timer": commands.StopTimer,
    "start_game": commands.StartGame,
    "end_game": commands.EndGame,
    "return_to_lobby": commands.ReturnToLobby,
}


class SimpleAction(BaseModel):
    action: Literal[
        "close_question",
        "activate_buzzer",
        "deactivate_buzzer",
        "clear_buzzer",
        "stop_timer",
        "start_game",
        "end_game",
        "return_to_lobby",
    ]

    def to_command(self) -> commands.GameCommand:
        return SIMPLE_COMMANDS[self.action]()


GameAction = Annotated[
    Union[
        SetCategoriesAction,
        QuestionAction,
        AdjustScoreAction,
        StartTimerAction,
        AnswerVisibilityAction,
        SimpleAction,
    ],
    Field(discriminator="action"),
]


class GameActionRequest(BaseModel):
    """Host game command, e.g. {"host_id": ..., "command": {"action": "activate_buzzer"}}."""
    host_id: str
    command: GameAction


class BuzzRequest(BaseModel):
    """Buzz attempt. Any client-side timestamp is ignored."""
    player_id: str
    player_name: str = ""


class BuzzResponse(BaseModel):
    position: int
    timestamp: int


# ===== REST Endpoints =====

@router.get("/{code}/state")
async def get_game_state(code: str, service: LobbyService = Depends(get_lobby_service)) -> Dict[str, Any]:
    """
    Get the game state of a lobby.

    Raises:
        404: Lobby not found
    """
    state = await service.get_game_state(code)
    return state.to_dict()


@router.put("/{code}/state")
async def set_game_state(
    code: str,
    request: SetGameStateRequest,
    service: LobbyService = Depends(get_lobby_service)
) -> Dict[str, Any]:
    """
    Replace game state fields. Last write wins for the fields sent.

    Raises:
        404: Lobby not found
        400: Malformed state, null required field or non-empty buzzer queue
        409: Duplicate player id or name
    """
    values = request.game_state.model_dump(exclude_unset=True)
    state = await service.set_game_state(code, values)
    return state.to_dict()


@router.post("/{code}/actions")
async def run_game_action(
    code: str,
    request: GameActionRequest,
    service: LobbyService = Depends(get_lobby_service)
) -> Dict[str, Any]:
    """
    Run a host game command.

    Raises:
        404: Lobby not found
        403: Not the host
        400: Command not valid for the current state
    """
    state = await service.apply_command(code, request.host_id, request.command.to_command())
    return state.to_dict()


@router.post("/{code}/buzz", response_model=BuzzResponse)
async def buzz(
    code: str,
    request: BuzzRequest,
    service: LobbyService = Depends(get_lobby_service)
):
    """
    Buzz in. Order is decided by server time only.

    Raises:
        404: Lobby not found
        400: Buzzer not active / player not in lobby
        409: Already buzzed
    """
    result = await service.buzz(code, request.player_id, request.player_name)
    return BuzzResponse(position=result.position, timestamp=result.timestamp)
