"""
Serialization Utilities

This module turns domain objects into JSON-friendly dictionaries, handling
dates, datetimes, enums, nested dataclasses and lists.
"""

import datetime
from enum import Enum
from typing import Any, Dict, List
from dataclasses import is_dataclass, fields


def serialize(obj: Any) -> Any:
    """
    Serialize a value to plain Python types.

    Args:
        obj: The value to serialize

    Returns:
        A value made only of dicts, lists, strings, numbers, booleans and None
    """
    if obj is None or isinstance(obj, (str, int, float, bool)):
        return obj

    # datetime is a subclass of date, both render as ISO strings
    if isinstance(obj, (datetime.datetime, datetime.date)):
        return obj.isoformat()

    if isinstance(obj, Enum):
        return obj.value

    if isinstance(obj, (list, tuple, set)):
        return [serialize(item) for item in obj]

    if isinstance(obj, dict):
        return {str(key): serialize(value) for key, value in obj.items()}

    if hasattr(obj, 'to_dict') and callable(getattr(obj, 'to_dict')):
        return serialize(obj.to_dict())

    if is_dataclass(obj):
        return {f.name: serialize(getattr(obj, f.name)) for f in fields(obj)}

    return str(obj)


class SerializableMixin:
    """
    Mixin that provides serialization capabilities to a class.

    Classes using this mixin define ``__serializable_fields__``, the list of
    attribute names included in ``to_dict``.
    """

    __serializable_fields__: List[str] = []

    def to_dict(self) -> Dict[str, Any]:
        """Convert the object to a dictionary."""
        return {
            name: serialize(getattr(self, name))
            for name in self.__serializable_fields__
            if hasattr(self, name)
        }
