"""JSON encoding and type-checked decoding of cached values."""

from functools import lru_cache
from typing import Any
from typing import TypeVar

from pydantic import PydanticSchemaGenerationError
from pydantic import TypeAdapter
from pydantic import ValidationError
from pydantic_core import PydanticSerializationError
from pydantic_core import from_json
from pydantic_core import to_json

from blueboxy.exceptions import SerializationError

T = TypeVar("T")


@lru_cache(maxsize=256)
def _adapter(type_: Any) -> TypeAdapter:
    return TypeAdapter(type_)


def get_adapter(type_: Any) -> TypeAdapter:
    try:
        return _adapter(type_)
    except TypeError:
        # Unhashable type expressions cannot be memoized
        return TypeAdapter(type_)


def encode(value: Any) -> bytes:
    """Serialize a value to JSON bytes.

    Raises:
        SerializationError: If the value has no JSON representation
    """
    try:
        return to_json(value)
    except (PydanticSerializationError, TypeError, ValueError) as e:
        msg = f"Cannot encode value of type {type(value).__name__}: {e}"
        raise SerializationError(msg) from e


def decode(raw: bytes | str) -> Any:
    """Parse JSON bytes into plain Python data.

    Raises:
        SerializationError: If the payload is not valid JSON
    """
    try:
        return from_json(raw)
    except ValueError as e:
        msg = f"Cannot decode cached payload: {e}"
        raise SerializationError(msg) from e


def coerce(value: Any, type_: type[T]) -> T:
    """Validate a stored value as ``type_``.

    Raises:
        SerializationError: If the value does not validate as ``type_``
    """
    try:
        return get_adapter(type_).validate_python(value)
    except (ValidationError, PydanticSchemaGenerationError) as e:
        msg = f"Cached value is not a valid {getattr(type_, '__name__', type_)}"
        raise SerializationError(msg) from e
