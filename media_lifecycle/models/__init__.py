"""SQLAlchemy models."""

from media_lifecycle.database import Base
from media_lifecycle.models.asset import Asset, AssetStatus, OriginSource
from media_lifecycle.models.asset_usage import AssetUsage, OwnerKind

__all__ = [
    "Base",
    "Asset",
    "AssetStatus",
    "OriginSource",
    "AssetUsage",
    "OwnerKind",
]
