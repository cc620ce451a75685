"""
Featur — Service result to HTTP error mapping

Services report expected failures as ``{"status": "invalid" | "not_found"}``
dicts instead of raising.  Routes pass results through ``raise_for_result``
so the mapping to status codes lives in one place.
"""

from __future__ import annotations

from fastapi import HTTPException, status

_STATUS_CODES: dict[str, int] = {
    "invalid": 422,
    "not_found": status.HTTP_404_NOT_FOUND,
    "exists": status.HTTP_409_CONFLICT,
}


def raise_for_result(result: dict, detail: str | None = None) -> dict:
    """Raise the matching ``HTTPException`` for a failed service result,
    otherwise return the result unchanged."""
    code = _STATUS_CODES.get(result.get("status"))
    if code is None:
        return result

    raise HTTPException(
        status_code=code,
        detail=detail or result.get("reason") or result["status"],
    )
