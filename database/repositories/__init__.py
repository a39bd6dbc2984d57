from database.repositories.base import BaseRepository
from database.repositories.override import OverrideRepository
from database.repositories.snapshot import SnapshotRepository

__all__ = [
    'BaseRepository',
    'OverrideRepository',
    'SnapshotRepository',
]
