import logging

import uvicorn

from api.app import app
from config import AppConfig
from db.database import Base, engine
import db.models  # noqa: F401  registers the tables on Base

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def initialize_database():
    """
    Creates all tables defined by models that inherit from Base.
    """
    logger.info("Creating database tables...")
    # only creates tables that don't already exist
    Base.metadata.create_all(bind=engine)
    logger.info("Tables created successfully.")


if __name__ == "__main__":
    initialize_database()
    uvicorn.run(app, host=AppConfig.HOST, port=AppConfig.PORT)
