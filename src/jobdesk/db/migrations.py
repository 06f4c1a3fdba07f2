import logging

from alembic.config import Config

from alembic import command

logger = logging.getLogger(__name__)


def run_migrations(db_url: str, config_path: str = "alembic.ini") -> None:
    alembic_cfg = Config(config_path)
    alembic_cfg.set_main_option("sqlalchemy.url", db_url)
    logger.info("Upgrading schema to head")
    command.upgrade(alembic_cfg, "head")
