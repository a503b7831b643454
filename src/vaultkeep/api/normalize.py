# API Module - Request Body Normalization
#
# Clients in the wild send the same request in PascalCase (older mobile
# builds) or camelCase (web, browser extension). Every request body passes
# through this one boundary, which lower-cases the first letter of each
# key at any depth. Handlers and pydantic models only ever see camelCase.

import json
import logging
from typing import Any, Awaitable, Callable, Dict, Type, TypeVar

from fastapi import Request
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from ..core.errors import ValidationError

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

_FORM_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


def normalize_key(key: str) -> str:
    return key[:1].lower() + key[1:] if key else key


def normalize_keys(value: Any) -> Any:
    """Recursively lower-case the first letter of every mapping key."""
    if isinstance(value, dict):
        return {normalize_key(k): normalize_keys(v) for k, v in value.items()}
    if isinstance(value, list):
        return [normalize_keys(v) for v in value]
    return value


async def read_body(request: Request) -> Dict[str, Any]:
    """Decode a JSON or form body into a normalized dict.

    An empty body decodes to ``{}``.

    Raises:
        ValidationError: Body is not a JSON object or a form.
    """
    content_type = request.headers.get("content-type", "").split(";")[0].strip().lower()
    if content_type in _FORM_TYPES:
        form = await request.form()
        return normalize_keys({k: v for k, v in form.items() if isinstance(v, str)})

    raw = await request.body()
    if not raw.strip():
        return {}
    try:
        data = json.loads(raw)
    except ValueError:
        raise ValidationError("Invalid request")
    if not isinstance(data, dict):
        raise ValidationError("Invalid request")
    return normalize_keys(data)


def first_error(exc: PydanticValidationError) -> str:
    """One readable message out of a pydantic error list."""
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    err = errors[0]
    location = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
    return f"{location}: {err.get('msg')}" if location else str(err.get("msg"))


def parse_model(model: Type[M], data: Dict[str, Any]) -> M:
    try:
        return model.model_validate(data)
    except PydanticValidationError as exc:
        raise ValidationError(first_error(exc)) from exc


async def json_body(request: Request) -> Dict[str, Any]:
    """Dependency: the normalized body as a plain dict."""
    return await read_body(request)


def body_of(model: Type[M]) -> Callable[[Request], Awaitable[M]]:
    """Dependency factory: the normalized body validated as ``model``."""

    async def dependency(request: Request) -> M:
        return parse_model(model, await read_body(request))

    return dependency
