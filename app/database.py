"""
In-memory SQLite store shared by the whole process.

StaticPool keeps every session on the same underlying sqlite3 connection,
which is what makes ":memory:" behave as one database. Nothing survives a
restart.
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


async def get_db():
    """Session per request, opened and closed on the event loop thread."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
