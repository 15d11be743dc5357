from __future__ import annotations

from pathlib import Path
from typing import Any, Dict

import click
from alembic import command
from alembic.config import Config as AlembicConfig
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from flask import Flask
from sqlalchemy import create_engine, inspect

from satinalma.db import schema_table_names


PROJECT_ROOT = Path(__file__).resolve().parents[1]

_SQLALCHEMY_SCHEMES = ("postgresql://", "postgresql+", "sqlite://", "sqlite+pysqlite://")


def to_sqlalchemy_url(raw: str | None) -> str:
    """DB_PATH may be a SQLite file path or a database URL; postgres:// is rewritten for SQLAlchemy."""
    value = (raw or "").strip()
    if not value:
        raise RuntimeError("Migration için DB_PATH veya DATABASE_URL tanımlı değil.")
    if value.startswith("postgres://"):
        value = "postgresql://" + value[len("postgres://") :]
    if value.startswith(_SQLALCHEMY_SCHEMES):
        return value
    return f"sqlite:///{Path(value).expanduser().resolve().as_posix()}"


def build_alembic_config(db_path: str) -> AlembicConfig:
    ini_path = PROJECT_ROOT / "alembic.ini"
    if not ini_path.exists():
        raise RuntimeError(f"alembic.ini bulunamadı: {ini_path}")
    alembic_cfg = AlembicConfig(str(ini_path))
    alembic_cfg.set_main_option("script_location", (PROJECT_ROOT / "migrations").as_posix())
    alembic_cfg.set_main_option("sqlalchemy.url", to_sqlalchemy_url(db_path))
    return alembic_cfg


def schema_status(db_path: str) -> Dict[str, Any]:
    alembic_cfg = build_alembic_config(db_path)
    head = ScriptDirectory.from_config(alembic_cfg).get_current_head()
    engine = create_engine(alembic_cfg.get_main_option("sqlalchemy.url"))
    try:
        with engine.connect() as connection:
            current = MigrationContext.configure(connection).get_current_revision()
            existing = set(inspect(connection).get_table_names())
    finally:
        engine.dispose()
    missing = [table for table in schema_table_names() if table not in existing]
    return {
        "current": current,
        "head": head,
        "missing_tables": missing,
        "up_to_date": current == head and not missing,
    }


def register_db_cli(app: Flask) -> None:
    @app.cli.group("db")
    def db_group() -> None:
        """Satınalma veritabanı şeması (Alembic)."""

    @db_group.command("upgrade")
    @click.argument("revision", required=False, default="head")
    def db_upgrade(revision: str) -> None:
        command.upgrade(build_alembic_config(app.config["DB_PATH"]), revision)
        click.echo(f"Şema {revision} sürümüne yükseltildi.")

    @db_group.command("downgrade")
    @click.argument("revision", required=False, default="-1")
    def db_downgrade(revision: str) -> None:
        command.downgrade(build_alembic_config(app.config["DB_PATH"]), revision)
        click.echo(f"Şema {revision} sürümüne indirildi.")

    @db_group.command("current")
    def db_current() -> None:
        command.current(build_alembic_config(app.config["DB_PATH"]), verbose=True)

    @db_group.command("status")
    def db_status() -> None:
        """Exits with 1 when the schema is behind head or tables are missing."""
        status = schema_status(app.config["DB_PATH"])
        click.echo(f"Sürüm: {status['current'] or '-'} (hedef {status['head']})")
        if status["missing_tables"]:
            click.echo("Eksik tablolar: " + ", ".join(status["missing_tables"]))
        if not status["up_to_date"]:
            raise click.exceptions.Exit(1)
