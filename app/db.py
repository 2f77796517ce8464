from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from app.config import settings
from app.models import Base
from app.models.user import User
from app.models.transaction import Category, RecurrenceRule, Transaction

SQLALCHEMY_DATABASE_URL = settings.database_url

connect_args = {"check_same_thread": False} if SQLALCHEMY_DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args=connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db():
    """
    Create tables if they don't exist.
    For schema changes, use Alembic migrations instead:
        poetry run alembic revision --autogenerate -m "Description of change"
        poetry run alembic upgrade head
    """
    Base.metadata.create_all(bind=engine)


# Only create tables on first run if database doesn't exist
# For schema changes, use: poetry run alembic upgrade head
init_db()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
