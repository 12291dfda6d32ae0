from .base import Base

# import models so Alembic/autoloaders can discover mappers
from .company import Collaborator, Company, Prize  # noqa: F401
from .participant import RoletaParticipant  # noqa: F401
from .raffle import Event, Raffle, RaffleParticipant, RaffleWinner  # noqa: F401

__all__ = [
    "Base",
    "Collaborator",
    "Company",
    "Event",
    "Prize",
    "Raffle",
    "RaffleParticipant",
    "RaffleWinner",
    "RoletaParticipant",
]
