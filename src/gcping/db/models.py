from peewee import (
    CharField,
    TextField,
    DateTimeField,
    Model,
)
from datetime import datetime
import pytz
from .db import db_instance


def utc_now() -> datetime:
    return datetime.now(pytz.UTC)


class BaseModel(Model):
    class Meta:
        database = db_instance.proxy


class Setting(BaseModel):
    key = CharField(unique=True)
    value = TextField()
    type = CharField()  # Type of the value (e.g., "int", "float", "bool", "json", "str")


class RegionRecord(BaseModel):
    region_id = CharField(unique=True)
    zone = CharField()
    address = CharField(null=True)
    status = CharField()  # RegionStatus value
    last_error = TextField(null=True)
    updated_at = DateTimeField(
        default=utc_now,
        formats=['%Y-%m-%d %H:%M:%S.%f%z', '%Y-%m-%d %H:%M:%S%z']
    )

    class Meta:
        table_name = "region"
