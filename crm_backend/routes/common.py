"""
Helpers shared by the route modules
"""

from typing import List

from fastapi import HTTPException
from fastapi.responses import Response

from crm_backend.models.auth import UserResponse
from crm_backend.services.query_filters import Pagination


def bad_request(field: str, message: str):
    """400 with a field-level error, rendered as {errors: [...]}"""
    raise HTTPException(status_code=400, detail=[{"field": field, "message": message}])


def not_found(what: str, message: str = None):
    raise HTTPException(status_code=404, detail=message or f"{what} not found")


def list_response(items: List[dict], pagination: Pagination, total: int) -> dict:
    return {
        "success": True,
        "count": len(items),
        "pagination": pagination.describe(total),
        "data": items,
    }


def attachment(content, media_type: str, filename: str) -> Response:
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


def public_user(user: dict) -> dict:
    """User document as UserResponse, never the password hash"""
    return UserResponse.model_validate(user).model_dump(mode="json")
