from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, TypeVar

from fastapi import Request
from pydantic import BaseModel, ValidationError

from inventory.errors import UnsupportedContentType, ValidationFailed

ModelT = TypeVar("ModelT", bound=BaseModel)

BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})


def _field_path(loc: Sequence[Any]) -> str:
    parts = list(loc)
    if parts and parts[0] == "body":
        parts = parts[1:]
    return ".".join(str(part) for part in parts)


def validation_details(errors: Sequence[Mapping[str, Any]]) -> list[dict[str, str]]:
    """Flatten pydantic/FastAPI errors into ``{field, message}`` pairs, one per violation."""
    details: list[dict[str, str]] = []
    for error in errors:
        details.append(
            {
                "field": _field_path(error.get("loc", ())),
                "message": str(error.get("msg", "Invalid value")),
            }
        )
    return details


def validate_body(model: type[ModelT], raw: Any) -> ModelT:
    try:
        return model.model_validate(raw)
    except ValidationError as exc:
        raise ValidationFailed(validation_details(exc.errors())) from exc


def require_json_content_type(request: Request) -> None:
    if request.method not in BODY_METHODS:
        return
    content_type = request.headers.get("content-type", "")
    if "application/json" not in content_type.lower():
        raise UnsupportedContentType()
