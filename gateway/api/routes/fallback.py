"""Catch-all for /api paths no other route claims."""

from fastapi import APIRouter, status

from gateway.api.error_response import ApiError

router = APIRouter()

ALL_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]


@router.api_route("/api/{path:path}", methods=ALL_METHODS, include_in_schema=False)
async def route_not_found(path: str) -> None:
    raise ApiError(status.HTTP_404_NOT_FOUND, "route_not_found", "The requested endpoint does not exist.")
