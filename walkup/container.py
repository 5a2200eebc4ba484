"""Service container: every constructed service behind one immutable object."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .auth import AuthService
from .config import AppConfig, ConfigHolder, config_holder
from .errors import NotInitializedError
from .game import LineupService, PlayerService
from .http_client import HttpService
from .logging_config import get_logger
from .music import MusicService
from .playback import PlaybackService
from .storage import StorageService
from .suppliers import SupplierRegistry, registry

logger = get_logger(__name__)


@dataclass(frozen=True)
class ServiceContainer:
    """Holds the services the rest of the application reads."""

    config: AppConfig
    http: HttpService
    storage: StorageService
    auth: AuthService
    music: MusicService
    player: PlaybackService
    players: PlayerService
    lineup: LineupService


class ContainerHolder:
    """Builds the ServiceContainer once from the config and the suppliers."""

    def __init__(self, config: ConfigHolder, suppliers: SupplierRegistry):
        self.config = config
        self.suppliers = suppliers
        self._container: Optional[ServiceContainer] = None

    def initialize(self) -> None:
        if self._container is not None:
            logger.warning("ServiceContainer is already initialized. Skipping re-initialization.")
            return
        if not self.config.is_initialized():
            raise NotInitializedError(
                "Cannot initialize ServiceContainer: AppConfig has not been initialized. "
                "Call ConfigHolder.initialize(config) before ContainerHolder.initialize()."
            )

        # Assigned only after every supplier succeeded
        container = ServiceContainer(
            config=self.config.get(),
            http=self.suppliers.http.supply(),
            storage=self.suppliers.storage.supply(),
            auth=self.suppliers.auth.supply(),
            music=self.suppliers.music.supply(),
            player=self.suppliers.playback.supply(),
            players=self.suppliers.players.supply(),
            lineup=self.suppliers.lineup.supply(),
        )
        self._container = container
        logger.info(
            f"ServiceContainer initialized ({'mock' if container.config.mock_auth else 'spotify'} services)"
        )

    def get(self) -> ServiceContainer:
        if self._container is None:
            raise NotInitializedError(
                "ServiceContainer not initialized. "
                "Call ContainerHolder.initialize() after ConfigHolder.initialize(config)."
            )
        return self._container

    def is_initialized(self) -> bool:
        return self._container is not None

    def reset(self) -> None:
        """Drop the container and every cached service (tests only)."""
        self._container = None
        self.suppliers.reset_for_tests()


# Process-wide default
container_holder = ContainerHolder(config_holder, registry)


def bootstrap_services(config: AppConfig) -> ServiceContainer:
    """Initialize the default config holder and container in one call."""
    config_holder.initialize(config)
    container_holder.initialize()
    return container_holder.get()


def reset_for_tests() -> None:
    """Return the default holders and suppliers to their empty state."""
    container_holder.reset()
    config_holder.reset()
