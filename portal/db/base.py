from __future__ import annotations

from sqlalchemy.orm import DeclarativeBase

# Largest primary key SQLite (and BIGINT columns elsewhere) can hold.
MAX_ROW_ID = 2**63 - 1


class Base(DeclarativeBase):
    pass
