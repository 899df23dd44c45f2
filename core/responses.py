# core/responses.py

from typing import Any

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse


def envelope(data: Any = None, message: str = "", status_code: int = 200) -> JSONResponse:
    """
    Normalized success response:
        {"error": false, "message": "...", "data": ...}
    `data` is omitted when None.
    """
    content = {"error": False, "message": message}
    if data is not None:
        content["data"] = jsonable_encoder(data)
    return JSONResponse(status_code=status_code, content=content)


def error_envelope(message: str, status_code: int, data: Any = None, headers=None) -> JSONResponse:
    """Normalized error response: {"error": true, "message": "..."}."""
    content = {"error": True, "message": message}
    if data is not None:
        content["data"] = jsonable_encoder(data)
    return JSONResponse(status_code=status_code, content=content, headers=headers)
