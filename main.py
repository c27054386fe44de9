import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional

from dbaccess.config import get_settings
from dbaccess.db.factory import create_db
from dbaccess.errors import DBError
from dbaccess.utils.logging_context import configure_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run one statement against the configured database.")
    parser.add_argument("statement", help="SQL statement, using the vendor's placeholder style")
    parser.add_argument("parameters", nargs="*", help="Positional bind parameters")
    return parser


async def run(statement: str, parameters: List[str], out=None) -> int:
    """Connect, execute *statement* and print its rows as JSON lines."""
    out = out or sys.stdout
    logger = logging.getLogger(__name__)
    settings = get_settings()

    try:
        db = create_db(settings.db)
        async with db:
            result = await db.execute(statement, parameters or None)
    except DBError as e:
        logger.error("%s", e)
        return 1

    for row in result.rows or []:
        out.write(json.dumps(row, default=str) + "\n")
    out.write(f"({result.row_count if result.row_count is not None else 0} rows)\n")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """The main function that runs the command line."""
    args = build_parser().parse_args(argv)
    settings = get_settings()

    configure_logging(settings.log_level_value, stream=sys.stderr)

    return asyncio.run(run(args.statement, args.parameters))


if __name__ == "__main__":
    sys.exit(main())
