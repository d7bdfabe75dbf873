from enum import Enum
from uuid import uuid4

from sqlalchemy import Column, DateTime, String, func
from sqlalchemy.dialects.postgresql import UUID

from elevate_api.db.base import Base


class UserRoleEnum(str, Enum):
    PARTICIPANT = "PARTICIPANT"
    REVIEWER = "REVIEWER"
    ADMIN = "ADMIN"
    SUPERADMIN = "SUPERADMIN"


class UserTypeEnum(str, Enum):
    EDUCATOR = "EDUCATOR"
    STUDENT = "STUDENT"


class User(Base):
    __tablename__ = "users"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    handle = Column(String, nullable=False, unique=True)
    name = Column(String, nullable=False)
    email = Column(String, nullable=False, unique=True, index=True)
    avatar_url = Column(String, nullable=True)
    role = Column(
        String(length=16),
        nullable=False,
        default=UserRoleEnum.PARTICIPANT.value,
        server_default=UserRoleEnum.PARTICIPANT.value,
    )
    user_type = Column(
        String(length=16),
        nullable=False,
        default=UserTypeEnum.EDUCATOR.value,
        server_default=UserTypeEnum.EDUCATOR.value,
    )
    school = Column(String, nullable=True)
    cohort = Column(String, nullable=True)
    kajabi_contact_id = Column(String, nullable=True, unique=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
