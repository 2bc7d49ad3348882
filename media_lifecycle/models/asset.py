"""Asset ledger model."""

from datetime import datetime
from enum import Enum

from sqlalchemy import Column, DateTime, Index, Integer, String
from sqlalchemy.orm import relationship

from media_lifecycle.database import Base


class AssetStatus(str, Enum):
    """Stored lifecycle states. Purged assets have no row."""

    TEMP = "temp"
    PERMANENT = "permanent"
    ARCHIVED = "archived"


class OriginSource(str, Enum):
    """Subsystem that created an upload."""

    PRODUCT = "product"
    CATEGORY = "category"
    CMS = "cms"
    BANNER = "banner"


class Asset(Base):
    """One record per distinct piece of uploaded content."""

    __tablename__ = "assets"
    __table_args__ = (
        Index("ix_assets_status_expires_at", "status", "expires_at"),
        Index("ix_assets_status_archived_at", "status", "archived_at"),
        Index("ix_assets_status_origin_source", "status", "origin_source"),
    )

    id = Column(Integer, primary_key=True, index=True)
    storage_key = Column(String(255), nullable=False, unique=True)
    delivery_url = Column(String(1000), nullable=False)
    content_hash = Column(String(64), nullable=False, unique=True)
    status = Column(String(20), nullable=False, default=AssetStatus.TEMP.value)
    expires_at = Column(DateTime, nullable=True)
    archived_at = Column(DateTime, nullable=True)

    # Provenance, set once on upload
    origin_source = Column(String(50), nullable=False)
    origin_context = Column(String(255), nullable=False)
    intended_use = Column(String(50), nullable=True)  # advisory only
    uploaded_by = Column(String(255), nullable=False)

    # Descriptive metadata, never drives lifecycle decisions
    width = Column(Integer, nullable=True)
    height = Column(Integer, nullable=True)
    format = Column(String(20), nullable=True)
    size_bytes = Column(Integer, nullable=True)
    resource_id = Column(String(255), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    usages = relationship(
        "AssetUsage",
        back_populates="asset",
        cascade="all, delete-orphan",
        order_by="AssetUsage.id",
    )

    @property
    def used_by(self) -> list:
        return [{"entity_type": u.entity_type, "entity_id": u.entity_id} for u in self.usages]

    def __repr__(self):
        return f"<Asset(id={self.id}, key={self.storage_key}, status={self.status})>"
