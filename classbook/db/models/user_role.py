from enum import Enum as PyEnum
from sqlalchemy import Enum, ForeignKey, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from ..session import Base


class Role(str, PyEnum):
    admin = "admin"
    teacher = "teacher"
    student = "student"


class UserRole(Base):
    __tablename__ = "user_roles"
    __table_args__ = (
        UniqueConstraint("profile_id", "role", "tenant_id", name="uq_user_role_binding"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    profile_id: Mapped[int] = mapped_column(ForeignKey("profiles.id", ondelete="CASCADE"))
    role: Mapped[Role] = mapped_column(Enum(Role), nullable=False)
    tenant_id: Mapped[int | None] = mapped_column(ForeignKey("teachers.id", ondelete="CASCADE"))

    profile = relationship("Profile")
