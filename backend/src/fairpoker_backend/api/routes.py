from __future__ import annotations

from fastapi import APIRouter, HTTPException, WebSocket, WebSocketDisconnect

from fairpoker_backend.api.deps import command_router, engine_service, publisher
from fairpoker_backend.engine.errors import EngineRejectedAction, GameNotFound
from fairpoker_backend.engine.models import (
    CommandRequest,
    CommandResponse,
    GameSummary,
    GameView,
    VerificationReport,
)


router = APIRouter(prefix="/api")


def _http_error(exc: EngineRejectedAction) -> HTTPException:
    status_code = 404 if isinstance(exc, GameNotFound) else 400
    return HTTPException(status_code=status_code, detail={"code": exc.code, "message": exc.message})


@router.post("/commands", response_model=CommandResponse)
async def submit_command(request: CommandRequest) -> CommandResponse:
    return await command_router.handle(request)


@router.get("/commands")
async def list_commands() -> dict[str, str]:
    return command_router.commands


@router.get("/games", response_model=list[GameSummary])
async def list_games() -> list[GameSummary]:
    return engine_service.list_games()


@router.get("/games/{game_id}/status", response_model=GameView)
async def get_status(game_id: str) -> GameView:
    try:
        return await engine_service.get_status(game_id)
    except EngineRejectedAction as exc:
        raise _http_error(exc) from exc


@router.get("/games/{game_id}/verify", response_model=VerificationReport)
async def verify_game(game_id: str) -> VerificationReport:
    try:
        return await engine_service.verify(game_id)
    except EngineRejectedAction as exc:
        raise _http_error(exc) from exc


@router.delete("/games/{game_id}", response_model=GameView)
async def abandon_game(game_id: str) -> GameView:
    try:
        return await engine_service.abandon_game(game_id)
    except EngineRejectedAction as exc:
        raise _http_error(exc) from exc


@router.websocket("/ws/records")
async def records_socket(websocket: WebSocket) -> None:
    await websocket.accept()
    queue = publisher.subscribe()
    try:
        while True:
            receipt = await queue.get()
            await websocket.send_json({"type": "RECORD", "payload": receipt.model_dump(mode="json")})
    except WebSocketDisconnect:
        pass
    finally:
        publisher.unsubscribe(queue)
