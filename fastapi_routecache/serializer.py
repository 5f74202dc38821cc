"""
Encodes values produced by decorated functions into the byte strings stored
by cache backends, and back.

Page bodies written through Cache.write are stored as-is; this module is only
used by the read-through decorators.
"""

import json
from datetime import datetime, date, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Optional
from uuid import UUID

import msgpack
from pydantic import BaseModel


class SerializationFormat(str, Enum):
    """Supported serialization formats."""
    JSON = "json"
    MSGPACK = "msgpack"


class JSONEncoder(json.JSONEncoder):
    """
    JSON encoder tagging the non-JSON types that cached results commonly carry.
    """

    def default(self, obj: Any) -> Any:
        if isinstance(obj, datetime):
            return {"__type__": "datetime", "value": obj.isoformat()}

        if isinstance(obj, date):
            return {"__type__": "date", "value": obj.isoformat()}

        if isinstance(obj, timedelta):
            return {"__type__": "timedelta", "value": obj.total_seconds()}

        if isinstance(obj, UUID):
            return {"__type__": "uuid", "value": str(obj)}

        if isinstance(obj, Decimal):
            return {"__type__": "decimal", "value": str(obj)}

        if isinstance(obj, bytes):
            return {"__type__": "bytes", "value": obj.decode("latin-1")}

        if isinstance(obj, (set, frozenset)):
            return {"__type__": "set", "value": sorted(obj, key=repr)}

        if isinstance(obj, Enum):
            return obj.value

        if isinstance(obj, BaseModel):
            return obj.model_dump(mode="json")

        return super().default(obj)


_DECODERS: dict[str, Callable[[Any], Any]] = {
    "datetime": datetime.fromisoformat,
    "date": date.fromisoformat,
    "timedelta": lambda value: timedelta(seconds=value),
    "uuid": UUID,
    "decimal": Decimal,
    "bytes": lambda value: value.encode("latin-1"),
    "set": set,
}


def _json_object_hook(obj: dict) -> Any:
    decoder = _DECODERS.get(obj.get("__type__", ""))
    if decoder is None:
        return obj
    return decoder(obj["value"])


def serialize_json(data: Any) -> bytes:
    return json.dumps(
        data, cls=JSONEncoder, separators=(",", ":"), ensure_ascii=False
    ).encode("utf-8")


def deserialize_json(data: bytes) -> Any:
    return json.loads(data.decode("utf-8"), object_hook=_json_object_hook)


def serialize_msgpack(data: Any) -> bytes:
    # Route through the JSON encoder so both formats tag the same types.
    json_compatible = json.loads(json.dumps(data, cls=JSONEncoder))
    return msgpack.packb(json_compatible, use_bin_type=True)


def deserialize_msgpack(data: bytes) -> Any:
    unpacked = msgpack.unpackb(data, raw=False)
    return json.loads(json.dumps(unpacked), object_hook=_json_object_hook)


_DEFAULT_FORMAT = SerializationFormat.JSON

_SERIALIZERS: dict[SerializationFormat, Callable[[Any], bytes]] = {
    SerializationFormat.JSON: serialize_json,
    SerializationFormat.MSGPACK: serialize_msgpack,
}

_DESERIALIZERS: dict[SerializationFormat, Callable[[bytes], Any]] = {
    SerializationFormat.JSON: deserialize_json,
    SerializationFormat.MSGPACK: deserialize_msgpack,
}


def set_default_format(format: SerializationFormat) -> None:
    global _DEFAULT_FORMAT
    _DEFAULT_FORMAT = SerializationFormat(format)


def get_default_format() -> SerializationFormat:
    return _DEFAULT_FORMAT


def serialize(data: Any, format: Optional[SerializationFormat] = None) -> bytes:
    """
    Serialize data to bytes using the specified or default format.

    :raises ValueError: If the format is not supported or encoding fails
    """
    format = format or _DEFAULT_FORMAT

    if format not in _SERIALIZERS:
        raise ValueError(f"Unsupported serialization format: {format}")

    try:
        return _SERIALIZERS[format](data)
    except Exception as e:
        raise ValueError(f"Failed to serialize data with format {format}: {e}") from e


def deserialize(data: bytes, format: Optional[SerializationFormat] = None) -> Any:
    """
    Deserialize bytes using the specified or default format.

    :raises ValueError: If the format is not supported or decoding fails
    """
    format = format or _DEFAULT_FORMAT

    if format not in _DESERIALIZERS:
        raise ValueError(f"Unsupported deserialization format: {format}")

    try:
        return _DESERIALIZERS[format](data)
    except Exception as e:
        raise ValueError(f"Failed to deserialize data with format {format}: {e}") from e


__all__ = [
    "serialize",
    "deserialize",
    "SerializationFormat",
    "set_default_format",
    "get_default_format",
    "JSONEncoder",
]
