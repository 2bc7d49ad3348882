"""Usage reference model."""

from datetime import datetime
from enum import Enum

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship

from media_lifecycle.database import Base


class OwnerKind(str, Enum):
    """Entity types allowed to hold a usage reference."""

    PRODUCT = "product"
    CATEGORY = "category"
    CMS = "cms"


class AssetUsage(Base):
    """A single (entity_type, entity_id) owner currently attached to an asset."""

    __tablename__ = "asset_usages"
    __table_args__ = (
        UniqueConstraint("asset_id", "entity_type", "entity_id", name="uq_asset_usages_owner"),
        Index("ix_asset_usages_owner", "entity_type", "entity_id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    asset_id = Column(Integer, ForeignKey("assets.id", ondelete="CASCADE"), nullable=False, index=True)
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(String(64), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    asset = relationship("Asset", back_populates="usages")

    def __repr__(self):
        return f"<AssetUsage(asset_id={self.asset_id}, owner={self.entity_type}:{self.entity_id})>"
