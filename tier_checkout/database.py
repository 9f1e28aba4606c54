from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from tier_checkout.config import DATABASE_URL


def make_engine(url: str = DATABASE_URL):
    return create_engine(
        url,
        connect_args={"check_same_thread": False} if url.startswith("sqlite") else {}
    )


engine = make_engine()

SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
Base = declarative_base()
