# app/infrastructure/persistence/database.py
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

import config


def build_engine(database_url: str):
    """
    Crea el engine. SQLite necesita check_same_thread=False porque la API y
    los workers comparten el archivo; en memoria además un único pool.
    """
    if database_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(database_url, **kwargs)
    return create_engine(database_url, pool_pre_ping=True)


engine = build_engine(config.DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def init_db(bind=None) -> None:
    # Registra las tablas antes de crearlas
    from app.infrastructure.persistence import models  # noqa: F401
    Base.metadata.create_all(bind=bind or engine)
