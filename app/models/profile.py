"""
GenBridge SG — Profile model (skills offered / wanted, credibility, credits).
"""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import ARRAY, JSONB, UUID as PgUUID
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class Profile(Base):
    __tablename__ = "profiles"

    id: Mapped[uuid.UUID] = mapped_column(
        PgUUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        PgUUID(as_uuid=True), unique=True, index=True, nullable=False,
        comment="Identity-provider user id (owner)",
    )
    full_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    bio: Mapped[str | None] = mapped_column(Text, nullable=True)
    location: Mapped[str | None] = mapped_column(String(100), nullable=True)
    age_group: Mapped[str | None] = mapped_column(String, nullable=True)
    avatar_url: Mapped[str | None] = mapped_column(String, nullable=True)
    phone_number_encrypted: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="Fernet token of the SG phone number"
    )
    skills_offered: Mapped[list[str]] = mapped_column(
        ARRAY(String), default=list, server_default="{}", nullable=False
    )
    skills_wanted: Mapped[list[str]] = mapped_column(
        ARRAY(String), default=list, server_default="{}", nullable=False
    )
    skills_proficiency: Mapped[dict | None] = mapped_column(
        JSONB, nullable=True, comment="skill -> beginner/intermediate/advanced/expert"
    )
    credibility_score: Mapped[int | None] = mapped_column(
        Integer, default=0, server_default="0", nullable=True
    )
    credits: Mapped[int] = mapped_column(
        Integer, default=0, server_default="0", nullable=False
    )
    skill_exchange_duration: Mapped[str | None] = mapped_column(
        String, nullable=True, comment="30 / 60 / 90 / 120 minutes"
    )
    preferred_language: Mapped[str] = mapped_column(
        String, default="en", server_default="en", nullable=False
    )
    joining_reason: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="Questionnaire answer; marks onboarding done"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), onupdate=func.now(), nullable=True
    )

    def __repr__(self) -> str:
        return (
            f"<Profile user={self.user_id} "
            f"offered={len(self.skills_offered or [])} "
            f"wanted={len(self.skills_wanted or [])}>"
        )
