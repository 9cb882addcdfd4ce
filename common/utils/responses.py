"""
Standard API response helpers.

Provides consistent response formatting for success and error cases.

Example:
    from common.utils import success_response, error_response

    @router.get("/circles")
    async def list_circles(user_id: str = Depends(require_auth)):
        circles = await membership_service.list_circles(user_id)
        return list_response([c.model_dump() for c in circles])
"""

from typing import Any, Optional, Dict


def success_response(
    data: Any = None,
    message: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Create a standard success response.

    Args:
        data: The response data (can be dict, list, or any serializable type)
        message: Optional success message

    Returns:
        Dictionary with success=True and optional data/message
    """
    response: Dict[str, Any] = {"success": True}

    if data is not None:
        response["data"] = data

    if message:
        response["message"] = message

    return response


def error_response(
    message: str,
    code: Optional[str] = None,
    kind: Optional[str] = None,
    details: Optional[Any] = None,
) -> Dict[str, Any]:
    """
    Create a standard error response.

    Args:
        message: Human-readable error message
        code: Machine-readable error code (e.g., "INVITE_NOT_FOUND")
        kind: Error kind from the taxonomy (e.g., "not_found")
        details: Additional error details

    Returns:
        Dictionary with success=False and error info
    """
    error: Dict[str, Any] = {"message": message}

    if code:
        error["code"] = code

    if kind:
        error["kind"] = kind

    if details is not None:
        error["details"] = details

    return {"success": False, "error": error}


def list_response(
    items: list,
    message: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Create a simple list response.

    Args:
        items: List of items
        message: Optional success message

    Returns:
        Dictionary with success=True and items list
    """
    response: Dict[str, Any] = {
        "success": True,
        "data": items,
        "count": len(items),
    }

    if message:
        response["message"] = message

    return response
