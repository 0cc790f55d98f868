import asyncio
import logging
from traceback import format_exc

from sqlalchemy import inspect

from launchpad.config.database import DatabaseConnectionManager
from launchpad.config.settings import Settings
from launchpad.core.models import AutomationJob, Staker, Token, TokenTaxConfig  # noqa: F401  registers tables
from launchpad.core.models.base import Base

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - [%(name)s] %(message)s'
)
logger = logging.getLogger(__name__)


def describe_schema(connection) -> None:
    """Log every table with its columns, foreign keys and indexes"""
    inspector = inspect(connection)
    for table in inspector.get_table_names():
        logger.info(f"\n{table}:")
        logger.info("Columns:")
        for column in inspector.get_columns(table):
            nullable = "NULL" if column['nullable'] else "NOT NULL"
            primary_key = "PRIMARY KEY" if column.get('primary_key', False) else ""
            logger.info(f"  - {column['name']}: {column['type']} {nullable} {primary_key}")

        foreign_keys = inspector.get_foreign_keys(table)
        if foreign_keys:
            logger.info("Foreign Keys:")
            for fk in foreign_keys:
                logger.info(f"  - {fk['constrained_columns']} -> {fk['referred_table']}.{fk['referred_columns']}")

        indices = inspector.get_indexes(table)
        if indices:
            logger.info("Indices:")
            for idx in indices:
                unique = "UNIQUE " if idx['unique'] else ""
                logger.info(f"  - {unique}INDEX on ({', '.join(idx['column_names'])})")


def existing_tables(connection):
    return inspect(connection).get_table_names()


async def init_database():
    """Create all tables, optionally dropping existing ones first"""
    settings = Settings()
    db = DatabaseConnectionManager(settings.database_url)
    logger.info("Initializing database...")

    try:
        await db.init()
        async with db.engine.connect() as conn:
            tables = await conn.run_sync(existing_tables)

        if tables:
            logger.info(f"Found existing tables: {', '.join(tables)}")
            recreate = input("Do you want to recreate all tables? (y/n): ")
            if recreate.lower() == 'y':
                logger.info("Dropping existing tables...")
                await db.drop_all()

        logger.info("\nCreating tables...")
        await db.create_all()
        logger.info("Tables created successfully!")

        async with db.engine.connect() as conn:
            await conn.run_sync(describe_schema)
        logger.info(f"Registered models: {', '.join(sorted(Base.metadata.tables))}")
    finally:
        await db.cleanup()


if __name__ == "__main__":
    try:
        asyncio.run(init_database())
        logger.info("\nDatabase initialization completed successfully!")
    except Exception as e:
        logger.error(f"\nError initializing database: {str(e)}")
        logger.error("\nFull error traceback:")
        logger.error(format_exc())
        raise
