"""Router exposing the player roster, the batting order and game control."""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException

from ..container import ServiceContainer
from ..dependencies import get_container, require_authenticated
from ..errors import AuthError, GameError, HttpError, PlayerNotFoundError
from ..game import LineupService
from ..logging_config import get_logger
from ..models import BattingOrder, BattingOrderCreate, Player, PlayerCreate, PlayerUpdate

logger = get_logger(__name__)

router = APIRouter()


def _game_error(exc: GameError) -> HTTPException:
    status_code = 404 if isinstance(exc, PlayerNotFoundError) else 400
    return HTTPException(status_code=status_code, detail=str(exc))


def _dump(player: Optional[Player]) -> Optional[dict]:
    return player.model_dump(mode="json") if player else None


async def _lineup_status(lineup: LineupService) -> dict:
    order = await lineup.current_batting_order()
    return {
        "in_progress": await lineup.is_game_in_progress(),
        "batting_order": order.model_dump(mode="json") if order else None,
        "current": _dump(await lineup.get_current_batter()),
        "on_deck": _dump(await lineup.get_on_deck_batter()),
        "in_the_hole": _dump(await lineup.get_in_the_hole_batter()),
    }


@router.get("/players", response_model=List[Player])
async def list_players(container: ServiceContainer = Depends(get_container)) -> List[Player]:
    return await container.players.get_all_players()


@router.post("/players", response_model=Player, status_code=201)
async def create_player(body: PlayerCreate, container: ServiceContainer = Depends(get_container)) -> Player:
    try:
        return await container.players.create_player(body.name)
    except GameError as exc:
        raise _game_error(exc) from exc


@router.get("/players/{player_id}", response_model=Player)
async def get_player(player_id: str, container: ServiceContainer = Depends(get_container)) -> Player:
    player = await container.players.get_player(player_id)
    if player is None:
        raise _game_error(PlayerNotFoundError(player_id))
    return player


@router.patch("/players/{player_id}", response_model=Player)
async def update_player(
    player_id: str,
    updates: PlayerUpdate,
    container: ServiceContainer = Depends(get_container),
) -> Player:
    try:
        return await container.players.update_player(player_id, updates)
    except GameError as exc:
        raise _game_error(exc) from exc


@router.delete("/players/{player_id}", status_code=204)
async def delete_player(player_id: str, container: ServiceContainer = Depends(get_container)) -> None:
    try:
        await container.players.delete_player(player_id)
    except GameError as exc:
        raise _game_error(exc) from exc


@router.get("/lineup")
async def lineup_status(container: ServiceContainer = Depends(get_container)) -> dict:
    """Batting order plus the current, on-deck and in-the-hole batters."""
    return await _lineup_status(container.lineup)


@router.put("/lineup", response_model=BattingOrder)
async def set_lineup(body: BattingOrderCreate, container: ServiceContainer = Depends(get_container)) -> BattingOrder:
    return await container.lineup.create_batting_order(body.player_ids)


@router.post("/game/start")
async def start_game(container: ServiceContainer = Depends(get_container)) -> dict:
    await container.lineup.start_game()
    return await _lineup_status(container.lineup)


@router.post("/game/end")
async def end_game(container: ServiceContainer = Depends(get_container)) -> dict:
    await container.lineup.end_game()
    return await _lineup_status(container.lineup)


@router.post("/game/next")
async def next_batter(container: ServiceContainer = Depends(get_container)) -> dict:
    await container.lineup.next_batter()
    return await _lineup_status(container.lineup)


@router.post("/game/walkup", dependencies=[Depends(require_authenticated)])
async def play_walk_up(container: ServiceContainer = Depends(get_container)) -> dict:
    """Play the current batter's walk-up segment."""
    batter = await container.lineup.get_current_batter()
    if batter is None:
        raise HTTPException(status_code=409, detail="No current batter. Set a lineup and start the game.")
    try:
        await container.lineup.play_walk_up_music(batter)
    except GameError as exc:
        raise _game_error(exc) from exc
    except AuthError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc
    except HttpError as exc:
        logger.error(f"Walk-up playback failed: {exc}")
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return {"playing": batter.song.track.uri, "player": _dump(batter)}


@router.post("/game/stop", dependencies=[Depends(require_authenticated)])
async def stop_music(container: ServiceContainer = Depends(get_container)) -> dict:
    try:
        await container.lineup.stop_music()
    except AuthError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc
    except HttpError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return {"paused": True}
