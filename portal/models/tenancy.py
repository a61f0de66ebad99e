from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Table, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from portal.db.base import Base


class Company(Base):
    __tablename__ = "companies"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)

    # Deleting a company removes everything scoped to it.
    departments: Mapped[list["Department"]] = relationship(
        back_populates="company",
        cascade="all, delete-orphan",
    )
    memberships: Mapped[list["UserCompany"]] = relationship(
        back_populates="company",
        cascade="all, delete-orphan",
    )


class Department(Base):
    __tablename__ = "departments"
    __table_args__ = (UniqueConstraint("company_id", "name"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    company_id: Mapped[int] = mapped_column(ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    company: Mapped[Company] = relationship(back_populates="departments")
    grants: Mapped[list["DepartmentGrant"]] = relationship(
        back_populates="department",
        cascade="all, delete-orphan",
    )


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        UniqueConstraint("username"),
        UniqueConstraint("email"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    username: Mapped[str] = mapped_column(String(50), nullable=False)
    email: Mapped[str] = mapped_column(String(100), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    memberships: Mapped[list["UserCompany"]] = relationship(
        back_populates="user",
        cascade="all, delete-orphan",
    )


class UserCompany(Base):
    """
    Binding: a user's role inside one company.

    ``department_id`` is the user's home department in that company and must
    belong to the same company (checked on flush, see portal.db.grant_store).
    """

    __tablename__ = "user_companies"
    __table_args__ = (UniqueConstraint("user_id", "company_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    company_id: Mapped[int] = mapped_column(ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    role: Mapped[str] = mapped_column(String(50), nullable=False)
    department_id: Mapped[int | None] = mapped_column(ForeignKey("departments.id"), nullable=True)

    user: Mapped[User] = relationship(back_populates="memberships")
    company: Mapped[Company] = relationship(back_populates="memberships")
    home_department: Mapped[Department | None] = relationship(foreign_keys=[department_id])
    grants: Mapped[list["DepartmentGrant"]] = relationship(
        back_populates="membership",
        cascade="all, delete-orphan",
    )


grant_permissions = Table(
    "grant_permissions",
    Base.metadata,
    Column("grant_id", ForeignKey("department_grants.id", ondelete="CASCADE"), primary_key=True),
    Column("permission_id", ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True),
)


class Permission(Base):
    __tablename__ = "permissions"
    __table_args__ = (UniqueConstraint("action", "resource_kind"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    resource_kind: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)


class DepartmentGrant(Base):
    """Permissions a binding holds in one department of its company."""

    __tablename__ = "department_grants"
    __table_args__ = (UniqueConstraint("user_company_id", "department_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_company_id: Mapped[int] = mapped_column(
        ForeignKey("user_companies.id", ondelete="CASCADE"), nullable=False, index=True
    )
    department_id: Mapped[int] = mapped_column(
        ForeignKey("departments.id", ondelete="CASCADE"), nullable=False, index=True
    )

    membership: Mapped[UserCompany] = relationship(back_populates="grants")
    department: Mapped[Department] = relationship(back_populates="grants")
    permissions: Mapped[list[Permission]] = relationship(secondary=grant_permissions)
