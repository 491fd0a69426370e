"""Customer Repository."""

from __future__ import annotations

from typing import Optional

from parcelops.models.customer import Customer
from parcelops.repositories.base_repository import BaseRepository
from parcelops.storage.local_cache import CacheKey


class CustomerRepository(BaseRepository[Customer]):
    KEY = CacheKey.CUSTOMERS
    MODEL = Customer

    def get_by_dni(self, dni: str) -> Optional[Customer]:
        normalized = dni.strip().lower()
        return next((c for c in self._load() if c.dni.lower() == normalized), None)
