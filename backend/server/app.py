"""
FastAPI app factory.

Responsibilities:
- Create and configure the FastAPI app
- Build the shared show objects once per process (store, decoder,
  synthetic clock, coordinator)
- Start the time source on startup, stop it on shutdown
- Register routes and the static client bundle
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Callable

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from broadcast.coordinator import BroadcastCoordinator
from config import AppConfig
from observability import logger
from observability.logger import log_event
from persistence.tag_file import TagFile, TagRepository, load_tags_or_defaults
from server.routes import register_routes
from show.store import ShowStore
from timecode.decoder import QuarterFrameDecoder
from timecode.midi_transport import MidiTransport, MidoTransport
from timecode.model import Timecode, TimecodeSource
from timecode.sources import SourceStatus, SyntheticClock, start_time_source


def create_app(
    config: AppConfig | None = None,
    *,
    tag_repository: TagRepository | None = None,
    transport_factory: Callable[[], MidiTransport] = MidoTransport,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    The app factory pattern allows:
    - Testing with fake transports and tag storage
    - Environment-specific setup
    - ASGI server compatibility
    """
    config = config or AppConfig.load_from_env()
    logger.configure(config.log_level)

    repository = tag_repository or TagFile(config.tags_file)
    store = ShowStore(
        tag_repository=repository,
        tags=load_tags_or_defaults(repository),
        initial_timecode=Timecode(
            frame_rate=config.synthetic_frame_rate,
            source=TimecodeSource.SYNTHETIC,
        ),
    )
    decoder = QuarterFrameDecoder(emit=store.set_timecode)
    clock = SyntheticClock(
        current=lambda: store.timecode,
        emit=store.set_timecode,
        frame_rate=config.synthetic_frame_rate,
    )
    coordinator = BroadcastCoordinator(
        store=store,
        source_status=SourceStatus(
            source_available=False,
            port_count=0,
            source_name=None,
            time_source=TimecodeSource.SYNTHETIC,
        ),
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        transport = None if config.disable_midi else transport_factory()
        source, status = start_time_source(
            transport=transport,
            decoder=decoder,
            clock=clock,
            port=config.midi_port,
        )
        app.state.time_source = source
        coordinator.set_source_status(status)

        log_event({
            "event_type": "SERVER_STARTED",
            "env": config.env,
            "port": config.port,
            "time_source": status.time_source.value,
            "midi_port": status.source_name,
        })

        try:
            yield
        finally:
            await source.shutdown()
            coordinator.shutdown()
            log_event({"event_type": "SERVER_STOPPED"})

    app = FastAPI(title="Timecoded Show Notes", lifespan=lifespan)

    app.state.config = config
    app.state.store = store
    app.state.decoder = decoder
    app.state.coordinator = coordinator

    # Middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # tighten later
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routes
    register_routes(app)

    # Static client bundle last so it never shadows API routes
    static_dir = Path(config.static_dir)
    if static_dir.is_dir():
        app.mount("/", StaticFiles(directory=static_dir, html=True), name="static")

    return app
