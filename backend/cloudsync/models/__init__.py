"""Database models for the application."""

from .models import ChangeLogEntry
from .models import DeviceCursor
from .models import Tombstone
from .models import VersionCounter
from .models import WorkspaceMember
from .synced import SYNCED_MODELS
from .synced import model_for

__all__ = [
    "ChangeLogEntry",
    "DeviceCursor",
    "SYNCED_MODELS",
    "Tombstone",
    "VersionCounter",
    "WorkspaceMember",
    "model_for",
]
