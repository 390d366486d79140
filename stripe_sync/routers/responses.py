"""JSON error bodies shared by the routers."""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi.responses import JSONResponse


def error_response(
    status_code: int,
    *,
    error: str,
    code: str,
    details: Optional[Dict[str, Any]] = None,
) -> JSONResponse:
    payload: Dict[str, Any] = {"error": error, "code": code}
    if details:
        payload["details"] = details
    return JSONResponse(status_code=status_code, content=payload)
