from __future__ import annotations

import logging
from datetime import date

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session, sessionmaker

from portal.db.base import Base
from portal.db.grant_store import SqlGrantStore
from portal.models.hr import EMPLOYEE_RECORD, Employee
from portal.models.tenancy import Company, User

logger = logging.getLogger(__name__)


def init_db(engine: Engine, session_factory: sessionmaker[Session], seed: bool = True) -> None:
    """
    Create tables and (optionally) seed demo data.

    The seed is small and deterministic so the authorization behavior can be
    tried without extra setup. It is skipped when companies already exist.
    """

    Base.metadata.create_all(bind=engine)
    if not seed:
        return

    with session_factory() as db:
        if _has_seed_data(db):
            return
        _seed(db)
        logger.info("Seeded demo companies, users and grants")


def _has_seed_data(db: Session) -> bool:
    return db.execute(select(Company.id).limit(1)).first() is not None


def _seed(db: Session) -> None:
    store = SqlGrantStore(db)

    # Companies and departments
    acme = store.add_company("Acme Corp")
    globex = store.add_company("Globex")

    acme_hr = store.add_department(acme.id, "Human Resources", "Acme HR")
    acme_it = store.add_department(acme.id, "Information Technology", "Acme IT")
    globex_fin = store.add_department(globex.id, "Finance", "Globex Finance")

    # Users
    alice = User(username="alice", email="alice@example.com", is_active=True)
    bob = User(username="bob", email="bob@example.com", is_active=True)
    carol = User(username="carol", email="carol@example.com", is_active=True)
    dave = User(username="dave", email="dave@example.com", is_active=False)
    db.add_all([alice, bob, carol, dave])
    db.flush()

    # Bindings: alice is admin at Acme but only a member at Globex.
    store.bind(alice.id, acme.id, "admin", home_department_id=acme_hr.id)
    store.bind(alice.id, globex.id, "member", home_department_id=globex_fin.id)
    store.bind(bob.id, acme.id, "member", home_department_id=acme_it.id)
    store.bind(carol.id, globex.id, "user")

    # Department grants
    read = f"read:{EMPLOYEE_RECORD}"
    update = f"update:{EMPLOYEE_RECORD}"
    delete = f"delete:{EMPLOYEE_RECORD}"
    store.grant(alice.id, acme.id, acme_hr.id, [read, update, delete])
    store.grant(alice.id, acme.id, acme_it.id, [read])
    store.grant(bob.id, acme.id, acme_it.id, [read])

    # Employee records
    db.add_all(
        [
            Employee(
                employee_id="E-1001",
                first_name="Hana",
                last_name="Hughes",
                email="hana.hughes@acme.example.com",
                company_id=acme.id,
                department_id=acme_hr.id,
                position="HR Partner",
                salary=78000.00,
                hire_date=date(2021, 4, 12),
            ),
            Employee(
                employee_id="E-1002",
                first_name="Ivan",
                last_name="Ito",
                email="ivan.ito@acme.example.com",
                company_id=acme.id,
                department_id=acme_it.id,
                position="Software Engineer",
                salary=120000.00,
                hire_date=date(2022, 6, 1),
            ),
            Employee(
                employee_id="E-2001",
                first_name="Fran",
                last_name="Fischer",
                email="fran.fischer@globex.example.com",
                company_id=globex.id,
                department_id=globex_fin.id,
                position="Accountant",
                salary=90000.00,
                hire_date=date(2020, 9, 10),
            ),
        ]
    )

    db.commit()
