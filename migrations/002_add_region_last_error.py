"""Peewee migrations -- 002_add_region_last_error.py."""
import peewee as pw
from peewee_migrate import Migrator


def migrate(migrator: Migrator, database: pw.Database, *, fake=False):
    """Keep the reason of the last failed reconciliation per region."""

    migrator.sql("""
        ALTER TABLE "region"
        ADD COLUMN "last_error" TEXT NULL
    """)


def rollback(migrator: Migrator, database: pw.Database, *, fake=False):
    """Write your rollback migrations here."""

    migrator.sql("""
        ALTER TABLE "region" DROP COLUMN "last_error"
    """)
