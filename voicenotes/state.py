from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from fastapi import Request

from .config import Settings, extractor_config, storage_config, transcriber_config
from .services.extraction import Extractor
from .services.session import Services, SessionRegistry
from .services.storage import NoteStore
from .services.transcriber import Transcriber


@dataclass
class State:
    """Mutable application state shared across routers.

    Attached to FastAPI's app.state; there are no module-level clients.
    """

    services: Services
    sessions: SessionRegistry = field(init=False)

    def __post_init__(self) -> None:
        self.sessions = SessionRegistry(self.services)


def build_services(settings: Settings) -> Services:
    return Services(
        transcriber=Transcriber(transcriber_config(settings)),
        extractor=Extractor(extractor_config(settings)),
        store=NoteStore(storage_config(settings)),
    )


def build_state(settings: Settings, services: Optional[Services] = None) -> State:
    return State(services=services or build_services(settings))


def get_state(request: Request) -> State:  # FastAPI dependency helper
    return request.app.state.state
