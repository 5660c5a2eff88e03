"""
Schema migration commands

Command-line front end over alembic's command API, run against the
application's engine. `python migrate_db.py --help` lists the commands.
"""
import argparse
import logging
import os
from pathlib import Path
from typing import Dict, List, Optional

from alembic import command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory

logger = logging.getLogger(__name__)

DEFAULT_ALEMBIC_INI = Path(__file__).resolve().parents[3] / "alembic.ini"


def alembic_config(ini_path: Optional[str] = None) -> Config:
    """
    Load alembic.ini

    Lookup order: explicit path, ALEMBIC_CONFIG, the repository root.
    script_location is resolved next to the ini so the commands work from any cwd.
    """
    path = Path(ini_path or os.getenv("ALEMBIC_CONFIG") or DEFAULT_ALEMBIC_INI).resolve()
    if not path.exists():
        raise FileNotFoundError(f"alembic.ini not found at {path}")

    cfg = Config(str(path))
    script_location = Path(cfg.get_main_option("script_location") or "alembic")
    if not script_location.is_absolute():
        cfg.set_main_option("script_location", str(path.parent / script_location))
    return cfg


def revision_status(cfg: Config, engine=None) -> Dict[str, Optional[str]]:
    """Current database revision next to the newest available one"""
    if engine is None:
        from .engine import engine

    head = ScriptDirectory.from_config(cfg).get_current_head()
    with engine.connect() as connection:
        current = MigrationContext.configure(connection).get_current_revision()
    return {"current": current, "head": head, "up_to_date": current is not None and current == head}


def _upgrade(cfg: Config, args) -> int:
    logger.info(f"Upgrading database to {args.revision}")
    command.upgrade(cfg, args.revision, sql=args.sql)
    logger.info("Upgrade complete")
    return 0


def _downgrade(cfg: Config, args) -> int:
    logger.warning(f"Downgrading database to {args.revision}")
    command.downgrade(cfg, args.revision, sql=args.sql)
    logger.info("Downgrade complete")
    return 0


def _current(cfg: Config, args) -> int:
    status = revision_status(cfg)
    print(f"current: {status['current'] or '<not initialized>'}")
    print(f"head:    {status['head']}")
    return 0


def _check(cfg: Config, args) -> int:
    status = revision_status(cfg)
    if status["up_to_date"]:
        logger.info(f"Database is at head ({status['head']})")
        return 0
    logger.error(f"Database at {status['current'] or '<not initialized>'}, expected {status['head']}")
    return 1


def _history(cfg: Config, args) -> int:
    command.history(cfg, verbose=args.verbose)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="migrate_db",
        description="Apply or inspect review entitlements schema migrations",
    )
    parser.add_argument("-c", "--config", help="Path to alembic.ini")
    parser.set_defaults(handler=_upgrade, revision="head", sql=False)
    subcommands = parser.add_subparsers(dest="command")

    upgrade = subcommands.add_parser("upgrade", help="Upgrade to a revision (default: head)")
    upgrade.add_argument("revision", nargs="?", default="head")
    upgrade.add_argument("--sql", action="store_true", help="Print SQL instead of running it")
    upgrade.set_defaults(handler=_upgrade)

    downgrade = subcommands.add_parser("downgrade", help="Downgrade to a revision (default: one step back)")
    downgrade.add_argument("revision", nargs="?", default="-1")
    downgrade.add_argument("--sql", action="store_true", help="Print SQL instead of running it")
    downgrade.set_defaults(handler=_downgrade)

    subcommands.add_parser("current", help="Show current and head revisions").set_defaults(handler=_current)
    subcommands.add_parser("check", help="Exit 1 unless the database is at head").set_defaults(handler=_check)

    history = subcommands.add_parser("history", help="List available revisions")
    history.add_argument("-v", "--verbose", action="store_true")
    history.set_defaults(handler=_history)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Run a migration command; with no command the database is upgraded to head"""
    from ..config import config
    from ..logging_config import setup_logging

    setup_logging(env=config.ENV, log_level=config.LOG_LEVEL)

    args = build_parser().parse_args(argv)
    cfg = alembic_config(args.config)
    return args.handler(cfg, args)
