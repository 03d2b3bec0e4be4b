from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from config import DBConfig

DATABASE_URL = DBConfig.DATABASE_URL

# SQLite needs the connection shared across the threads FastAPI serves from
_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(
    DATABASE_URL,
    echo=False,  # Set to True to see SQL queries in console
    connect_args=_connect_args,
)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine
)

Base = declarative_base()


def get_db():
    """
    Dependency yielding a database session; closed once the request is done.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
