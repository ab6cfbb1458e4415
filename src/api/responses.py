"""JSON response envelopes shared by all API routes.

Success: {"success": true, "data": ..., "meta": {...}}
Error:   {"success": false, "error": {"code", "message"}, "meta": {...}}
"""

from datetime import datetime, timezone

from fastapi.responses import JSONResponse

from src.logging.audit import generate_request_id
from src.security.gate import Reject
from src.security.ratelimit import RateLimitInfo


def _meta(request_id: str | None) -> dict:
    return {
        "request_id": request_id or generate_request_id(),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


def success_body(data, request_id: str | None = None) -> dict:
    return {"success": True, "data": data, "meta": _meta(request_id)}


def error_response(
    code: str,
    message: str,
    status_code: int,
    request_id: str | None = None,
    rate_info: RateLimitInfo | None = None,
) -> JSONResponse:
    headers = rate_info.headers() if rate_info else {}
    if request_id:
        headers["X-Request-Id"] = request_id
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "error": {"code": code, "message": message},
            "meta": _meta(request_id),
        },
        headers=headers,
    )


def rejection_response(reject: Reject, request_id: str | None = None) -> JSONResponse:
    """Render a gate rejection with its fixed status/code pair."""
    reason = reject.reason
    return error_response(
        code=reason.code,
        message=reject.denial.message,
        status_code=reason.status_code,
        request_id=request_id,
        rate_info=reject.rate_info,
    )
