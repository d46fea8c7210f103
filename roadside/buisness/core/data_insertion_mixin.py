"""
Row <-> dict conversion shared by every model
The demo-data build creates rows from dicts; the JSON API and the event payloads read rows back as dicts.
"""

from datetime import datetime

from sqlalchemy import inspect

from roadside import db
from roadside.logger import get_logger

logger = get_logger("roadside.domain.core.data_insertion")

AUDIT_FIELDS = ('created_at', 'updated_at')


class DataInsertionMixin:
    """
    Adds from_dict / to_dict / bulk_create_from_dicts to a SQLAlchemy model

    Keys that are not columns are dropped on the way in.
    Columns named in PRIVATE_FIELDS never leave the model through to_dict().
    """

    PRIVATE_FIELDS = ()

    @classmethod
    def column_keys(cls):
        return [column.key for column in inspect(cls).columns]

    @classmethod
    def from_dict(cls, data_dict, skip_fields=()):
        """Build an unsaved instance from the keys of data_dict that are columns of this model"""
        keys = set(cls.column_keys()) - set(skip_fields)
        values = {
            key: value for key, value in data_dict.items()
            # Let the column defaults fill in audit timestamps
            if key in keys and not (key in AUDIT_FIELDS and value is None)
        }
        return cls(**values)

    def to_dict(self, include_audit_fields=True):
        """Serialise public columns; datetimes become ISO-8601 strings"""
        result = {}
        for key in self.column_keys():
            if key in self.PRIVATE_FIELDS:
                continue
            if key in AUDIT_FIELDS and not include_audit_fields:
                continue
            value = getattr(self, key)
            result[key] = value.isoformat() if isinstance(value, datetime) else value
        return result

    @classmethod
    def bulk_create_from_dicts(cls, data_list, skip_fields=(), commit=True):
        """
        Add one instance per dict to the session

        Args:
            data_list (list): Dicts of column values
            skip_fields (tuple): Keys ignored even when they are columns
            commit (bool): Commit here, or leave it to the caller's transaction

        Returns:
            list: The new instances
        """
        instances = [cls.from_dict(data_dict, skip_fields) for data_dict in data_list]
        db.session.add_all(instances)

        if not commit:
            return instances
        try:
            db.session.commit()
        except Exception as e:
            db.session.rollback()
            logger.error(f"Bulk insert of {len(instances)} {cls.__name__} rows failed: {e}")
            raise
        logger.info(f"Created {len(instances)} {cls.__name__} rows")
        return instances
