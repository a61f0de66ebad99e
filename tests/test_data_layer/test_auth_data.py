"""
Tests for user-loading data access (ORM).

Uses db_session fixture: in-memory SQLite, rolled back after each test.
"""
from __future__ import annotations

import pytest
from fastapi import HTTPException

from portal.models.tenancy import Company, Department, User, UserCompany
from portal.security.auth import load_user


def test_load_user_returns_user_with_company_memberships(db_session):
    # Arrange: company, department, user bound to the company (like init_db does)
    company = Company(name="Acme")
    db_session.add(company)
    db_session.flush()

    dept = Department(company_id=company.id, name="IT", description="IT Dept")
    db_session.add(dept)
    db_session.flush()

    user = User(username="testuser", email="test@example.com", is_active=True)
    db_session.add(user)
    db_session.flush()

    db_session.add(UserCompany(user_id=user.id, company_id=company.id, role="admin", department_id=dept.id))
    db_session.commit()

    # Act
    loaded = load_user(db_session, user.id)

    # Assert
    assert loaded.id == user.id
    assert loaded.username == "testuser"
    assert len(loaded.memberships) == 1
    assert loaded.memberships[0].role == "admin"
    assert loaded.memberships[0].company.name == "Acme"
    assert loaded.memberships[0].home_department.name == "IT"


def test_load_user_raises_when_not_found(db_session):
    with pytest.raises(HTTPException) as exc_info:
        load_user(db_session, 99999)
    assert exc_info.value.status_code == 401


def test_load_user_raises_when_inactive(db_session):
    user = User(username="inactive", email="inactive@example.com", is_active=False)
    db_session.add(user)
    db_session.commit()

    with pytest.raises(HTTPException) as exc_info:
        load_user(db_session, user.id)
    assert exc_info.value.status_code == 401
