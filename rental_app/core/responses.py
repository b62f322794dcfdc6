from typing import Any

from fastapi.encoders import jsonable_encoder


def success_body(message: str, data: Any = None) -> dict:
    return {"status": True, "message": message, "data": jsonable_encoder(data)}
