from .base import Base, async_engine, async_session_factory, get_db
from .dog import Dog, HealthLog, MedRecord
from .care import CareRequest, SitterLog
from .community import FoundDog, LostAlert, Sighting

__all__ = [
    "Base",
    "async_engine",
    "async_session_factory",
    "get_db",
    "Dog",
    "HealthLog",
    "MedRecord",
    "CareRequest",
    "SitterLog",
    "LostAlert",
    "Sighting",
    "FoundDog",
]
