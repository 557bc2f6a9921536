"""Storage usage schema."""

from pydantic import BaseModel


class StorageUsage(BaseModel):
    storage_used_bytes: int
    used_gb: float
    used_percentage: float
