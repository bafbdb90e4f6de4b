"""
Turns pydantic validation failures into the service ValidationError.
"""

from typing import TypeVar

import pydantic

from .errors import ValidationError

M = TypeVar("M", bound=pydantic.BaseModel)


def parse_fields(model: type[M], fields: dict) -> M:
    try:
        return model.model_validate(fields)
    except pydantic.ValidationError as e:
        raise ValidationError(
            f"Invalid {model.__name__}",
            {"errors": e.errors(include_url=False, include_context=False, include_input=False)},
        ) from e
