import uuid
from datetime import datetime
from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from .database import Base


class Keg(Base):
    __tablename__ = "kegs"

    # Token id minted for the keg, e.g. KEG-1000
    id = Column(String, primary_key=True)
    brewery_id = Column(UUID(as_uuid=True), ForeignKey("breweries.id", ondelete="SET NULL"), nullable=True, index=True)
    name = Column(String, nullable=False)
    type = Column(String, nullable=False, index=True)  # beer style
    abv = Column(Integer, nullable=False)  # percent * 10
    ibu = Column(Integer, nullable=False)
    brew_date = Column(Date, nullable=False)
    keg_size = Column(Text, nullable=False)
    expected_pints = Column(Integer, nullable=False)
    qr_code = Column(Text, nullable=True, unique=True)

    current_holder = Column(UUID(as_uuid=True), ForeignKey("user_roles.id", ondelete="SET NULL"), nullable=True, index=True)
    last_scan = Column(DateTime, nullable=True)
    last_location = Column(Text, nullable=True)
    tap_position = Column(Integer, nullable=True)

    is_empty = Column(Boolean, nullable=False, default=False, index=True)
    pints_sold = Column(Integer, nullable=False, default=0)
    variance = Column(Integer, nullable=False, default=0)
    variance_status = Column(Text, nullable=False, default="NORMAL")  # NORMAL|WARNING|CRITICAL

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, nullable=True)
    retired_at = Column(DateTime, nullable=True)

    scans = relationship("KegScan", back_populates="keg", cascade="all, delete-orphan")


class KegScan(Base):
    __tablename__ = "keg_scans"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    keg_id = Column(String, ForeignKey("kegs.id", ondelete="CASCADE"), nullable=False, index=True)
    scanned_by = Column(UUID(as_uuid=True), ForeignKey("user_roles.id", ondelete="SET NULL"), nullable=True)
    location = Column(Text, nullable=False)  # coordinates or address
    timestamp = Column(DateTime, nullable=False, index=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    keg = relationship("Keg", back_populates="scans")
