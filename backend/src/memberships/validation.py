"""Input validation helpers shared by the ledger services."""
from typing import Any, Mapping, Type, TypeVar

import pydantic
from pydantic import BaseModel

from memberships.exceptions import ValidationError

SchemaT = TypeVar("SchemaT", bound=BaseModel)


def parse_input(schema: Type[SchemaT], data: SchemaT | Mapping[str, Any]) -> SchemaT:
    """
    Validate service input against its schema before any write happens.

    Already-validated schema instances pass through untouched, so the API layer
    (where FastAPI has validated the body) pays nothing extra.

    Args:
        schema: Pydantic schema class describing the input contract
        data: Schema instance or raw mapping

    Returns:
        Validated schema instance

    Raises:
        ValidationError: On the first field violating the contract
    """
    if isinstance(data, schema):
        return data

    try:
        return schema.model_validate(data)
    except pydantic.ValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(loc) for loc in first["loc"]) or schema.__name__
        raise ValidationError(field, first["msg"]) from exc
