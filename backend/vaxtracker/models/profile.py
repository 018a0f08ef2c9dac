import uuid
from sqlalchemy import Column, String, DateTime
from sqlalchemy.sql import func
from vaxtracker.database import Base


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(320), unique=True, nullable=False, index=True)
    full_name = Column(String(200), default="")
    role = Column(String(20), nullable=False, default="user")  # "user" | "admin"
    # Null for profiles provisioned from a token; those cannot sign in.
    password_hash = Column(String(255))
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __mapper_args__ = {"eager_defaults": True}

    @property
    def display_name(self) -> str:
        return self.full_name or self.email
