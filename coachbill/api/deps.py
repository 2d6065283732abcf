from fastapi import Depends
from sqlalchemy.orm import Session

from coachbill.db import SessionLocal
from coachbill.services.ledger import SqlLedgerStore


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_ledger(db: Session = Depends(get_db)) -> SqlLedgerStore:
    return SqlLedgerStore(db)
