from functools import wraps
from typing import Iterable
from flask import request
from pydantic import ValidationError
from .responses import validation_error_response


def missing_fields(data: dict, required: Iterable[str]) -> list:
    """Return the required fields that are absent or blank in ``data``."""
    if not isinstance(data, dict):
        return list(required)
    missing = []
    for field in required:
        value = data.get(field)
        if value is None or (isinstance(value, str) and not value.strip()):
            missing.append(field)
    return missing


def validate_schema(schema):
    """Decorator to validate request JSON against a Pydantic schema."""

    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            try:
                obj = schema(**(request.get_json(silent=True) or {}))
            except ValidationError as ve:
                return validation_error_response(ve.errors())
            request.validated_data = obj
            return fn(*args, **kwargs)
        return wrapper

    return decorator
