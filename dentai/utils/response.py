from typing import Any

from pydantic import BaseModel


def _to_jsonable(data: Any) -> Any:
    if isinstance(data, BaseModel):
        return data.model_dump(mode="json")
    if isinstance(data, (list, tuple)):
        return [_to_jsonable(item) for item in data]
    if isinstance(data, dict):
        return {key: _to_jsonable(value) for key, value in data.items()}
    return data


def success_response(data: Any = None, message: str | None = None) -> dict:
    return {"status": "success", "data": _to_jsonable(data), "message": message}


def error_response(message: str, data: Any = None) -> dict:
    return {"status": "error", "data": _to_jsonable(data), "message": message}
