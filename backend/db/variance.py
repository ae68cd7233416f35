import uuid
from datetime import datetime
from sqlalchemy import JSON, Boolean, Column, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from .database import Base


class VarianceReport(Base):
    """Investigation report stored when a retired keg misses its expected yield."""
    __tablename__ = "variance_reports"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    keg_id = Column(String, ForeignKey("kegs.id", ondelete="CASCADE"), nullable=False, index=True)
    variance_amount = Column(Integer, nullable=False)
    status = Column(Text, nullable=False)  # NORMAL|WARNING|CRITICAL
    ai_analysis = Column(JSON, nullable=False)
    resolved = Column(Boolean, nullable=False, default=False)
    resolved_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)

    keg = relationship("Keg")


class VarianceAlert(Base):
    """Operational variance found by the analyzer."""
    __tablename__ = "variance_alerts"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    type = Column(Text, nullable=False, index=True)
    severity = Column(Text, nullable=False, index=True)  # critical|high|medium|low
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)

    current_value = Column(Float, nullable=False)
    expected_value = Column(Float, nullable=False)
    variance = Column(Float, nullable=False)
    variance_percentage = Column(Float, nullable=False)
    impact = Column(Text, nullable=True)
    recommendations = Column(JSON, nullable=False, default=list)
    confidence = Column(Float, nullable=False, default=0.0)

    status = Column(Text, nullable=False, default="new", index=True)  # new|investigating|resolved|false_positive
    notes = Column(Text, nullable=True)
    resolution_notes = Column(Text, nullable=True)
    assigned_to = Column(String, nullable=True)
    priority = Column(String, nullable=True)

    keg_id = Column(String, ForeignKey("kegs.id", ondelete="SET NULL"), nullable=True, index=True)
    restaurant_id = Column(UUID(as_uuid=True), ForeignKey("restaurants.id", ondelete="SET NULL"), nullable=True, index=True)

    detected_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, nullable=True)
    resolved_at = Column(DateTime, nullable=True)

    actions = relationship("VarianceAction", back_populates="alert", cascade="all, delete-orphan")


class VarianceAction(Base):
    __tablename__ = "variance_actions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    variance_id = Column(UUID(as_uuid=True), ForeignKey("variance_alerts.id", ondelete="CASCADE"), nullable=False, index=True)
    action_type = Column(Text, nullable=False)
    action_details = Column(JSON, nullable=True)
    timestamp = Column(DateTime, nullable=False, default=datetime.utcnow)

    alert = relationship("VarianceAlert", back_populates="actions")
