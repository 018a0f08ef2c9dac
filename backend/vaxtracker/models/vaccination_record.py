import uuid
from sqlalchemy import Column, Integer, String, Date, DateTime, ForeignKey
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from vaxtracker.database import Base


class VaccinationRecord(Base):
    __tablename__ = "vaccination_records"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    vaccine_name = Column(String(200), nullable=False)
    dose_number = Column(Integer, nullable=False)
    date_given = Column(Date, nullable=False)
    next_due = Column(Date)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __mapper_args__ = {"eager_defaults": True}

    owner = relationship("Profile", lazy="selectin")
    # At most one open reminder per record; deleting the record removes it.
    reminders = relationship(
        "Reminder",
        back_populates="record",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
