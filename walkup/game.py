"""Players, their walk-up songs, and the batting order of a game."""

from __future__ import annotations

import time
import uuid
from datetime import date
from typing import List, Optional

from pydantic import ValidationError

from .errors import GameError, PlayerNotFoundError, StorageError
from .logging_config import get_logger
from .models import BattingOrder, GameState, Player, PlayerUpdate, SpotifyTrack, utcnow
from .music import MusicService
from .storage import StorageService

logger = get_logger(__name__)

PLAYERS_KEY = "players"
GAME_STATE_KEY = "game-state"


class PlayerService:
    """Player roster persisted as one list under the ``players`` key."""

    def __init__(self, storage: StorageService, music: MusicService):
        self.storage = storage
        self.music = music

    async def _save_all(self, players: List[Player]) -> None:
        await self.storage.save(PLAYERS_KEY, [p.model_dump(mode="json") for p in players])

    async def get_all_players(self) -> List[Player]:
        try:
            raw = await self.storage.load(PLAYERS_KEY)
        except StorageError as exc:
            logger.error(f"Failed to load players: {exc}")
            return []
        if not isinstance(raw, list):
            return []

        players = []
        for item in raw:
            try:
                players.append(Player.model_validate(item))
            except ValidationError as exc:
                logger.warning(f"Skipping invalid stored player: {exc}")
        return players

    async def get_player(self, player_id: str) -> Optional[Player]:
        for player in await self.get_all_players():
            if player.id == player_id:
                return player
        return None

    async def create_player(self, name: str) -> Player:
        if not name or not name.strip():
            raise GameError("Player name cannot be empty")
        player = Player(id=str(uuid.uuid4()), name=name)
        players = await self.get_all_players()
        players.append(player)
        await self._save_all(players)
        logger.info(f"Created player {player.name} ({player.id})")
        return player

    async def update_player(self, player_id: str, updates: PlayerUpdate) -> Player:
        players = await self.get_all_players()
        for index, player in enumerate(players):
            if player.id != player_id:
                continue
            changes = updates.model_dump(exclude_unset=True)
            if "name" in changes and not (changes["name"] or "").strip():
                raise GameError("Player name cannot be empty")
            players[index] = Player.model_validate({**player.model_dump(), **changes, "updated_at": utcnow()})
            await self._save_all(players)
            return players[index]
        raise PlayerNotFoundError(player_id)

    async def delete_player(self, player_id: str) -> None:
        players = await self.get_all_players()
        remaining = [p for p in players if p.id != player_id]
        if len(remaining) == len(players):
            raise PlayerNotFoundError(player_id)
        await self._save_all(remaining)

    async def search_songs(self, query: str) -> List[SpotifyTrack]:
        return await self.music.search_tracks(query)


class LineupService:
    """Batting order and game progress, persisted under ``game-state``.

    State is read from storage on first use, so a restarted process picks up
    the game where it stopped.
    """

    def __init__(self, players: PlayerService, music: MusicService, storage: StorageService):
        self.players = players
        self.music = music
        self.storage = storage
        self._order: Optional[BattingOrder] = None
        self._active = False
        self._loaded = False

    async def load_game_state(self) -> None:
        try:
            raw = await self.storage.load(GAME_STATE_KEY)
            state = GameState.model_validate(raw) if raw is not None else None
        except (StorageError, ValidationError) as exc:
            logger.error(f"Failed to load game state: {exc}")
            state = None
        if state is not None:
            self._active = state.is_game_active
            self._order = state.current_batting_order
        self._loaded = True

    async def _ensure_loaded(self) -> None:
        if not self._loaded:
            await self.load_game_state()

    async def _save_game_state(self) -> None:
        state = GameState(is_game_active=self._active, current_batting_order=self._order)
        await self.storage.save(GAME_STATE_KEY, state.model_dump(mode="json"))

    async def create_batting_order(self, player_ids: List[str]) -> BattingOrder:
        """Start a new order from ``player_ids``, dropping unknown players."""
        await self._ensure_loaded()
        known = {p.id for p in await self.players.get_all_players()}
        order = BattingOrder(
            id=f"batting-order-{int(time.time() * 1000)}",
            name=f"Lineup {date.today().isoformat()}",
            player_ids=[player_id for player_id in player_ids if player_id in known],
        )
        self._order = order
        await self._save_game_state()
        return order

    async def update_batting_order(self, order: BattingOrder) -> BattingOrder:
        await self._ensure_loaded()
        self._order = order.model_copy(update={"updated_at": utcnow()})
        await self._save_game_state()
        return self._order

    async def current_batting_order(self) -> Optional[BattingOrder]:
        await self._ensure_loaded()
        return self._order

    async def _batter_at(self, offset: int) -> Optional[Player]:
        await self._ensure_loaded()
        if self._order is None or not self._active or not self._order.player_ids:
            return None
        ids = self._order.player_ids
        position = self._order.current_position
        if offset == 0 and position >= len(ids):
            return None
        return await self.players.get_player(ids[(position + offset) % len(ids)])

    async def get_current_batter(self) -> Optional[Player]:
        return await self._batter_at(0)

    async def get_on_deck_batter(self) -> Optional[Player]:
        return await self._batter_at(1)

    async def get_in_the_hole_batter(self) -> Optional[Player]:
        return await self._batter_at(2)

    async def next_batter(self) -> None:
        """Advance to the next batter, wrapping to the top of the order."""
        await self._ensure_loaded()
        if self._order is None or not self._active or not self._order.player_ids:
            return
        position = (self._order.current_position + 1) % len(self._order.player_ids)
        self._order = self._order.model_copy(update={"current_position": position, "updated_at": utcnow()})
        await self._save_game_state()

    async def play_walk_up_music(self, player: Player) -> None:
        if player.song is None:
            raise GameError("Player has no song selected")
        await self.music.preview_track(
            player.song.track.uri,
            int(player.song.start_time * 1000),
            int(player.song.duration * 1000),
        )

    async def stop_music(self) -> None:
        await self.music.pause()

    async def start_game(self) -> None:
        await self._ensure_loaded()
        self._active = True
        await self._save_game_state()

    async def end_game(self) -> None:
        # The batting order is kept for the next game
        await self._ensure_loaded()
        self._active = False
        await self._save_game_state()

    async def is_game_in_progress(self) -> bool:
        await self._ensure_loaded()
        return self._active
