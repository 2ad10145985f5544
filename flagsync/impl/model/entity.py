import json
from typing import Any, List, Optional

# Entities are built from the decoded JSON of a diff and validated eagerly. Only the properties the
# sync core relies on are checked; everything else (such as a flag's rule payload) is carried along
# untouched, so to_json_dict() returns exactly what the server sent.


class ModelError(ValueError):
    """Raised when a flag, segment, diff or stream envelope does not have the expected shape."""

    def __init__(self, name: str, problem: str):
        super().__init__('invalid data: property "%s" %s' % (name, problem))
        self.property_name = name


def _type_name(t) -> str:
    return getattr(t, '__name__', str(t))


def opt_type(data: dict, name: str, desired_type) -> Any:
    value = data.get(name)
    # bool is a subclass of int, but a boolean change number is still malformed
    if value is not None and (not isinstance(value, desired_type) or (desired_type is int and isinstance(value, bool))):
        raise ModelError(name, "should be %s but was %s" % (_type_name(desired_type), _type_name(type(value))))
    return value


def req_type(data: dict, name: str, desired_type) -> Any:
    value = opt_type(data, name, desired_type)
    if value is None:
        raise ModelError(name, "is required")
    return value


def opt_bool(data: dict, name: str) -> bool:
    return opt_type(data, name, bool) is True


def opt_int(data: dict, name: str) -> Optional[int]:
    return opt_type(data, name, int)


def req_int(data: dict, name: str) -> int:
    return req_type(data, name, int)


def opt_str(data: dict, name: str) -> Optional[str]:
    return opt_type(data, name, str)


def req_str(data: dict, name: str) -> str:
    return req_type(data, name, str)


def opt_list_of(data: dict, name: str, item_type) -> list:
    items = opt_type(data, name, list) or []
    for item in items:
        if not isinstance(item, item_type):
            raise ModelError(name, "should only contain %s but had %s" % (_type_name(item_type), _type_name(type(item))))
    return items


def opt_dict_list(data: dict, name: str) -> List[dict]:
    return opt_list_of(data, name, dict)


def opt_str_list(data: dict, name: str) -> List[str]:
    return opt_list_of(data, name, str)


class ModelEntity:
    """
    Base of the stored entities. Every entity is identified by ``name`` and versioned by
    ``changeNumber``; instances are immutable once built.
    """

    __slots__ = ['_data', '_name', '_change_number']

    def __init__(self, data: dict):
        if not isinstance(data, dict):
            raise ModelError('<root>', "should be an object but was %s" % _type_name(type(data)))
        self._data = data
        self._name = req_str(data, 'name')
        self._change_number = req_int(data, 'changeNumber')

    @property
    def name(self) -> str:
        return self._name

    @property
    def change_number(self) -> int:
        return self._change_number

    def to_json_dict(self) -> dict:
        return self._data

    def get(self, attribute, default=None) -> Any:
        return self._data.get(attribute, default)

    def __eq__(self, other) -> bool:
        return self.__class__ == other.__class__ and self._data == other._data

    def __hash__(self) -> int:
        return hash((self.__class__, self._name, self._change_number))

    def __repr__(self) -> str:
        return '%s(%s)' % (self.__class__.__name__, json.dumps(self._data, separators=(',', ':'), sort_keys=True))
