"""Data service implementations and the factory that picks one from settings."""

from __future__ import annotations

from typing import Optional

from ..config import Settings, load_settings
from .base import DataService
from .records import (
    CollaboratorRecord,
    CompanyRecord,
    ParticipantRecord,
    PrizeRecord,
    RaffleEntryRecord,
    RaffleRecord,
    RaffleWinnerRecord,
)
from .rest import RestDataService
from .sql import SqlDataService


def make_data_service(settings: Optional[Settings] = None) -> DataService:
    """Return the REST client when ``DATA_SERVICE_URL`` is set, else the SQL service."""

    settings = settings or load_settings()
    if settings.data_service_url:
        return RestDataService(
            settings.data_service_url,
            settings.data_service_key,
            timeout=settings.data_service_timeout,
        )

    from ..db.engine import get_sessionmaker, make_engine

    return SqlDataService(get_sessionmaker(make_engine(settings.db_url)))


__all__ = [
    "CollaboratorRecord",
    "CompanyRecord",
    "DataService",
    "ParticipantRecord",
    "PrizeRecord",
    "RaffleEntryRecord",
    "RaffleRecord",
    "RaffleWinnerRecord",
    "RestDataService",
    "SqlDataService",
    "make_data_service",
]
