"""API dependencies."""
from functools import lru_cache

from policy_adapter.core import config
from policy_adapter.core.logging_config import logger
from policy_adapter.services.adapter import Adapter, new_adapter


@lru_cache(maxsize=1)
def get_adapter() -> Adapter:
    """Application-wide adapter built from the environment configuration."""
    cache = config.cache_options() if config.cache_enabled() else None
    adapter = new_adapter(
        config.SQLALCHEMY_DATABASE_URL,
        cache=cache,
        policy_table_name=config.POLICY_TABLE_NAME,
    )
    logger.info(f"Policy adapter ready: {type(adapter).__name__} on table {config.POLICY_TABLE_NAME}")
    return adapter
