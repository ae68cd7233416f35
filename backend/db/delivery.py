import uuid
from datetime import datetime
from sqlalchemy import Column, DateTime, ForeignKey, Numeric, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from .database import Base


class Delivery(Base):
    __tablename__ = "deliveries"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    driver_id = Column(UUID(as_uuid=True), ForeignKey("user_roles.id", ondelete="SET NULL"), nullable=True, index=True)
    restaurant_id = Column(UUID(as_uuid=True), ForeignKey("restaurants.id", ondelete="SET NULL"), nullable=True, index=True)
    brewery_id = Column(UUID(as_uuid=True), ForeignKey("breweries.id", ondelete="SET NULL"), nullable=True, index=True)
    status = Column(Text, nullable=False, default="PENDING", index=True)  # PENDING|ACCEPTED|REJECTED|CANCELLED

    driver_signature = Column(Text, nullable=True)
    manager_signature = Column(Text, nullable=True)
    blockchain_tx_hash = Column(Text, nullable=True)

    scheduled_at = Column(DateTime, nullable=True)
    accepted_at = Column(DateTime, nullable=True)
    deposit_amount = Column(Numeric(10, 2), nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, nullable=True)

    items = relationship("DeliveryItem", back_populates="delivery", cascade="all, delete-orphan")

    @property
    def keg_ids(self):
        return [it.keg_id for it in (self.items or [])]


class DeliveryItem(Base):
    __tablename__ = "delivery_items"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    delivery_id = Column(UUID(as_uuid=True), ForeignKey("deliveries.id", ondelete="CASCADE"), nullable=False, index=True)
    keg_id = Column(String, ForeignKey("kegs.id", ondelete="CASCADE"), nullable=False, index=True)

    # Snapshot of the keg at delivery time
    keg_name = Column(String, nullable=False)
    keg_type = Column(String, nullable=False)
    keg_size = Column(Text, nullable=False)
    deposit_value = Column(Numeric(10, 2), nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    delivery = relationship("Delivery", back_populates="items")
