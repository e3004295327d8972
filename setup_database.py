"""
Database Setup Script for the Task Recommendation Engine

Creates the database (PostgreSQL only) and the tables for:
- Persisted per-user bandit models
- Decision logs read by the pattern miner
"""

import argparse
import logging

import psycopg2
from psycopg2.extensions import ISOLATION_LEVEL_AUTOCOMMIT
from sqlalchemy.engine import make_url

from config.settings import configure_logging, get_settings
from services.database import create_db_engine, init_db

logger = logging.getLogger(__name__)


def create_database(db_name: str, host: str = "localhost", port: int = 5432,
                    user: str = "postgres", password: str = ""):
    """Create the PostgreSQL database if it doesn't exist."""
    try:
        conn = psycopg2.connect(
            host=host,
            port=port,
            user=user,
            password=password,
            dbname="postgres"
        )
        conn.set_isolation_level(ISOLATION_LEVEL_AUTOCOMMIT)
        cursor = conn.cursor()

        cursor.execute("SELECT 1 FROM pg_catalog.pg_database WHERE datname = %s", (db_name,))
        exists = cursor.fetchone()

        if not exists:
            cursor.execute(f'CREATE DATABASE "{db_name}"')
            logger.info(f"Database '{db_name}' created successfully")
        else:
            logger.info(f"Database '{db_name}' already exists")

        cursor.close()
        conn.close()

    except Exception as e:
        logger.error(f"Error creating database: {e}")
        raise


def create_tables(database_url: str):
    """Create all tables used by the engine."""
    try:
        engine = create_db_engine(database_url)
        init_db(engine)
        engine.dispose()
        logger.info("All tables created successfully")
    except Exception as e:
        logger.error(f"Error creating tables: {e}")
        raise


def main():
    """Main setup function."""
    settings = get_settings()
    configure_logging(settings)

    parser = argparse.ArgumentParser(description="Create the recommendation engine database")
    parser.add_argument("--database-url", default=settings.database_url,
                        help="SQLAlchemy database URL (defaults to DATABASE_URL)")
    args = parser.parse_args()

    print("Task Recommendation Engine - Database Setup")
    print("=" * 50)

    url = make_url(args.database_url)

    try:
        if url.get_backend_name() == "postgresql":
            print("Creating database...")
            create_database(url.database, url.host or "localhost", url.port or 5432,
                            url.username or "postgres", url.password or "")

        print("Creating tables...")
        create_tables(args.database_url)

        print("\nDatabase setup completed successfully!")
        print(f"Database URL: {url.render_as_string(hide_password=True)}")

    except Exception as e:
        print(f"Database setup failed: {e}")
        raise


if __name__ == "__main__":
    main()
