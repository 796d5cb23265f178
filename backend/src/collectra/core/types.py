"""Operations, the HTTP method table, and the field type registry."""

from dataclasses import dataclass
from enum import Enum

from sqlalchemy import JSON, BigInteger, Boolean, DateTime, Float, Integer, Numeric, Text
from sqlalchemy.types import TypeEngine


class Operation(Enum):
    """The CRUD operation a request resolves to."""

    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"


# Fixed bijection between HTTP methods and operations.
METHOD_TO_OPERATION: dict[str, Operation] = {
    "GET": Operation.READ,
    "POST": Operation.CREATE,
    "PUT": Operation.UPDATE,
    "DELETE": Operation.DELETE,
}

OPERATION_TO_METHOD: dict[Operation, str] = {
    op: method for method, op in METHOD_TO_OPERATION.items()
}


def resolve_operation(method: str) -> Operation | None:
    """Map an HTTP method to its operation, or None if it has no mapping."""
    return METHOD_TO_OPERATION.get(method.upper())


@dataclass
class FieldType:
    name: str
    storage_type: type[TypeEngine]


# Scalar field types. Keys are "type" or "type:subtype" for numbers.
FIELD_TYPES: dict[str, FieldType] = {
    "String": FieldType(name="String", storage_type=Text),
    "Json": FieldType(name="Json", storage_type=JSON),
    "number:Int": FieldType(name="Int", storage_type=Integer),
    "number:BigInt": FieldType(name="BigInt", storage_type=BigInteger),
    "number:Float": FieldType(name="Float", storage_type=Float),
    "number:Decimal": FieldType(name="Decimal", storage_type=Numeric),
    "Boolean": FieldType(name="Boolean", storage_type=Boolean),
    "DateTime": FieldType(name="DateTime", storage_type=DateTime),
}

NUMBER_SUBTYPES = ("Int", "BigInt", "Float", "Decimal")
SCALAR_TYPES = ("String", "Json", "number", "Boolean", "DateTime")
RELATION_TYPE = "relation"
ID_STRATEGIES = ("autoincrement", "uuid", "cuid")


def field_type_key(type_name: str, subtype: str | None = None) -> str:
    """Registry key for a field type ("number" needs its subtype)."""
    if type_name == "number":
        return f"number:{subtype or 'Int'}"
    return type_name


def get_field_type(type_name: str, subtype: str | None = None) -> FieldType:
    """Get a scalar field type definition.

    Raises:
        KeyError: If the type (or number subtype) is unknown
    """
    return FIELD_TYPES[field_type_key(type_name, subtype)]


def get_storage_type(type_name: str, subtype: str | None = None) -> type[TypeEngine]:
    """Get the SQLAlchemy column type for a scalar field type."""
    return get_field_type(type_name, subtype).storage_type
