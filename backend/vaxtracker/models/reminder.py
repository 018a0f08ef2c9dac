import uuid
from sqlalchemy import Column, String, Date, DateTime, Boolean, ForeignKey
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from vaxtracker.database import Base


class Reminder(Base):
    __tablename__ = "reminders"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    record_id = Column(
        String(36), ForeignKey("vaccination_records.id", ondelete="CASCADE"), nullable=False, index=True
    )
    due_date = Column(Date, nullable=False)
    # Stored for parity with the schema; nothing marks a reminder as sent.
    sent = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __mapper_args__ = {"eager_defaults": True}

    record = relationship("VaccinationRecord", back_populates="reminders", lazy="selectin")
