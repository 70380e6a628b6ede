"""Dependency injection container for the display service."""

from dependency_injector import containers, providers

from constants import CLIENT_TYPE_DISPLAY
from core.config import Settings
from core.database import Database
from services.display_agent import DisplayRelayAgent
from services.playback import PlaybackService
from services.relay import RelayHub, RelayTransport
from services.scheduler import TaskScheduler
from services.session_aggregator import SessionAggregator
from services.sleep_session import SleepSessionController


class Container(containers.DeclarativeContainer):
    """Application dependency injection container."""

    # Settings
    settings = providers.Singleton(
        Settings,
    )

    # Persistence store
    database = providers.Singleton(
        Database,
        settings=settings
    )

    scheduler = providers.Singleton(
        TaskScheduler
    )

    # Relay
    relay_hub = providers.Singleton(
        RelayHub
    )

    transport = providers.Singleton(
        RelayTransport,
        base_url=settings.provided.relay_url,
        client_type=CLIENT_TYPE_DISPLAY,
        pairing_code=settings.provided.relay_pairing_code,
        reconnect_delay=settings.provided.relay_reconnect_delay,
        keepalive_interval=settings.provided.relay_keepalive_interval,
    )

    # Services
    session_aggregator = providers.Singleton(
        SessionAggregator,
        store=database,
        tz=settings.provided.display_tzinfo
    )

    display_agent = providers.Singleton(
        DisplayRelayAgent,
        transport=transport,
        aggregator=session_aggregator
    )

    playback = providers.Singleton(
        PlaybackService,
        scheduler=scheduler,
        tracks=settings.provided.audio_tracks
    )

    sleep_controller = providers.Singleton(
        SleepSessionController,
        display_agent=display_agent,
        playback=playback
    )


# Global container instance
container = Container()
