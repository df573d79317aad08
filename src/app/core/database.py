"""Database setup for the page usage ledger."""
from models import Base, engine
from config import get_settings

settings = get_settings()
logger = settings.logger


def setup_database() -> None:
    """Creates all tables defined by the SQLAlchemy models."""
    logger.info("Setting up database...")
    Base.metadata.create_all(bind=engine)
    logger.info("Database is ready.")
