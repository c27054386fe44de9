"""Creates the DB variant matching a configuration's vendor."""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Type, Union

from pydantic import ValidationError

from ..config import DBConfig, PostgresDBConfig, SQLiteDBConfig
from ..errors import FactoryError
from .engine import DB
from .models import Vendor
from .postgres import PostgresDB
from .sqlite import SQLiteDB

logger = logging.getLogger(__name__)

DB_CLASSES: Dict[Vendor, Type[DB]] = {
    Vendor.POSTGRES: PostgresDB,
    Vendor.SQLITE: SQLiteDB,
}

CONFIG_CLASSES: Dict[Vendor, Type[DBConfig]] = {
    Vendor.POSTGRES: PostgresDBConfig,
    Vendor.SQLITE: SQLiteDBConfig,
}


def resolve_vendor(vendor: Any) -> Vendor:
    """Match a vendor discriminator case-insensitively."""
    if not isinstance(vendor, str):
        raise FactoryError('The config argument must define a "vendor" string property')
    try:
        return Vendor(vendor.strip().lower())
    except ValueError:
        raise FactoryError(
            f"Failed to create DB instance. Unsupported vendor specified in configuration: {vendor!r}"
        ) from None


def create_db(config: Union[DBConfig, Mapping[str, Any]]) -> DB:
    """
    Create the DB instance for *config*'s vendor.

    *config* is a ``DBConfig`` or a plain mapping with the same keys. The
    returned DB is NOT connected. Raises ``FactoryError`` when the vendor is
    missing or unsupported, or the configuration is invalid.
    """
    if isinstance(config, DBConfig):
        vendor = resolve_vendor(config.vendor)
        db_config = config
    elif isinstance(config, Mapping):
        vendor = resolve_vendor(config.get("vendor"))
        values = {k: v for k, v in config.items() if k != "vendor" and v is not None}
        try:
            db_config = CONFIG_CLASSES[vendor](vendor=vendor.value, **values)
        except ValidationError as e:
            raise FactoryError(f"Invalid {vendor.value} configuration", e) from e
    else:
        raise FactoryError(f"Unsupported configuration type: {type(config).__name__}")

    db = DB_CLASSES[vendor](db_config)
    logger.debug("Created %s for database %s", type(db).__name__, db_config.database)
    return db
