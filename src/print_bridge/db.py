from print_bridge.models import Base

import os
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker


DB_PATH = os.environ.get("PRINT_BRIDGE_DB", "printers.db")
ENGINE = create_engine(f"sqlite:///{DB_PATH}", future=True, connect_args={"check_same_thread": False})
SessionLocal = sessionmaker(bind=ENGINE, autoflush=False, autocommit=False, future=True)


def open_db(path):
    """Create engine + session factory for a printer database."""
    engine = create_engine(f"sqlite:///{path}", future=True)
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, expire_on_commit=False)


def use_database(path):
    """Point the service's SessionLocal at another database file."""
    engine = create_engine(f"sqlite:///{path}", future=True, connect_args={"check_same_thread": False})
    SessionLocal.configure(bind=engine)
    Base.metadata.create_all(engine)


def init_db():
    Base.metadata.create_all(SessionLocal.kw["bind"])
