"""
Parcel Repository.

Parcels are kept newest first, the order every parcel list is shown in.
"""

from __future__ import annotations

from typing import Optional

from parcelops.models.parcel import Parcel
from parcelops.repositories.base_repository import BaseRepository
from parcelops.storage.local_cache import CacheKey


class ParcelRepository(BaseRepository[Parcel]):
    KEY = CacheKey.PARCELS
    MODEL = Parcel
    NEWEST_FIRST = True

    def get_by_tracking_code(self, code: str) -> Optional[Parcel]:
        """Case-insensitive, whitespace-trimmed lookup."""
        normalized = code.strip().upper()
        return next(
            (p for p in self._load() if p.tracking_code.upper() == normalized), None
        )

    def tracking_code_exists(self, code: str) -> bool:
        return self.get_by_tracking_code(code) is not None
