import json

from peewee import (
    DoesNotExist,
    IntegrityError,
)

from .db import db_instance
from .models import RegionRecord, Setting, utc_now


class Repository:
    # Region Methods
    def upsert_region(
        self,
        region_id: str,
        zone: str,
        status: str,
        address: str | None = None,
        last_error: str | None = None,
    ) -> RegionRecord:
        """
        Create or update the record of a region.

        A known address is never cleared by an update that carries no address;
        it is only replaced by a new one or removed with clear_address.
        """
        with db_instance.connection():
            with db_instance.db.atomic():
                record = RegionRecord.get_or_none(RegionRecord.region_id == region_id)
                if record is None:
                    try:
                        return RegionRecord.create(
                            region_id=region_id,
                            zone=zone,
                            status=status,
                            address=address,
                            last_error=last_error,
                        )
                    except IntegrityError as e:
                        raise ValueError(f"Region '{region_id}' already exists.") from e

                record.zone = zone
                record.status = status
                if address is not None:
                    record.address = address
                record.last_error = last_error
                record.updated_at = utc_now()
                record.save()
                return record

    def clear_address(self, region_id: str) -> None:
        """Forget the address of a region after it was released."""
        with db_instance.connection():
            RegionRecord.update(address=None, updated_at=utc_now()).where(
                RegionRecord.region_id == region_id
            ).execute()

    def get_region(self, region_id: str) -> RegionRecord:
        """Retrieve a region record by region id."""
        with db_instance.connection():
            try:
                return RegionRecord.get(RegionRecord.region_id == region_id)
            except DoesNotExist as e:
                raise ValueError(f"Region '{region_id}' does not exist.") from e

    def list_regions(self, status: str | None = None) -> list[RegionRecord]:
        """List region records ordered by region id, optionally filtered by status."""
        with db_instance.connection():
            query = RegionRecord.select().order_by(RegionRecord.region_id)
            if status is not None:
                query = query.where(RegionRecord.status == status)
            return list(query)

    def delete_region(self, region_id: str) -> None:
        """Delete the record of a region."""
        with db_instance.connection():
            record = self.get_region(region_id)
            record.delete_instance()

    # Setting Methods
    def set_setting(self, key: str, value):
        """Add or update a setting."""
        type_map = {
            int: "int",
            float: "float",
            bool: "bool",
            dict: "json",
            list: "json",
            str: "str",
        }
        value_type = type(value)

        if value_type not in type_map:
            raise ValueError(f"Unsupported type: {value_type}")

        type_str = type_map[value_type]
        if type_str == "json":
            value = json.dumps(value)
        elif type_str == "bool":
            value = str(int(value))  # Convert True/False to 1/0
        else:
            value = str(value)

        with db_instance.connection():
            try:
                Setting.insert(key=key, value=value, type=type_str).on_conflict(
                    conflict_target=[Setting.key],
                    preserve=[Setting.value, Setting.type],
                ).execute()
            except IntegrityError as e:
                raise ValueError(f"Error saving setting '{key}'.") from e

    def get_setting(self, key: str):
        """Retrieve a setting by its key."""
        with db_instance.connection():
            try:
                setting = Setting.get(Setting.key == key)
            except DoesNotExist:
                raise ValueError(f"Setting with key '{key}' does not exist.")

        value, type_str = setting.value, setting.type
        if type_str == "int":
            return int(value)
        elif type_str == "float":
            return float(value)
        elif type_str == "bool":
            return bool(int(value))
        elif type_str == "json":
            return json.loads(value)
        elif type_str == "str":
            return value
        raise ValueError(f"Unknown type '{type_str}' for key '{key}'.")
