"""Peewee migrations -- 001_init.py."""

from contextlib import suppress

import peewee as pw
from peewee_migrate import Migrator

with suppress(ImportError):
    pass


def migrate(migrator: Migrator, database: pw.Database, *, fake=False):  # noqa: ARG001
    """Create the settings and region tables."""

    if isinstance(database, pw.PostgresqlDatabase):
        datetime_type = "TIMESTAMP"
        id_column = '"id" SERIAL PRIMARY KEY'
    else:
        datetime_type = "DATETIME"
        id_column = '"id" INTEGER NOT NULL PRIMARY KEY AUTOINCREMENT'

    # Setting table
    migrator.sql(
        f"""
        CREATE TABLE "setting" (
            {id_column},
            "key" VARCHAR(255) NOT NULL,
            "value" TEXT NOT NULL,
            "type" VARCHAR(255) NOT NULL
        )
    """
    )
    migrator.sql('CREATE UNIQUE INDEX "setting_key" ON "setting" ("key")')

    # Region table, one row per serving region
    migrator.sql(
        f"""
        CREATE TABLE "region" (
            {id_column},
            "region_id" VARCHAR(255) NOT NULL,
            "zone" VARCHAR(255) NOT NULL,
            "address" VARCHAR(255) NULL,
            "status" VARCHAR(255) NOT NULL,
            "updated_at" {datetime_type} NOT NULL
        )
    """
    )
    migrator.sql('CREATE UNIQUE INDEX "region_region_id" ON "region" ("region_id")')


def rollback(migrator: Migrator, database: pw.Database, *, fake=False):  # noqa: ARG001
    """Write your rollback migrations here."""
    migrator.sql('DROP TABLE IF EXISTS "region"')
    migrator.sql('DROP TABLE IF EXISTS "setting"')
