"""Database engine and session factory for the accessory cache"""
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from nestcam.core.config import settings

engine_kwargs = {
    "echo": settings.DEBUG,
}

# SQLite requires check_same_thread=False when the API and the scheduler share it
if settings.DATABASE_URL.startswith("sqlite"):
    engine_kwargs["connect_args"] = {"check_same_thread": False}

engine = create_engine(settings.DATABASE_URL, **engine_kwargs)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()
