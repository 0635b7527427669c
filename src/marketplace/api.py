"""FastAPI router exposing marketplace actions as JSON endpoints.

The upstream identity layer authenticates the user and forwards their id in
the ``X-User-Id`` header; the engine trusts it.  Every response body is the
tagged :class:`~marketplace.actions.ActionResult`, with the HTTP status
derived from the error kind.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Header, Request
from fastapi.responses import JSONResponse

from marketplace.actions import ActionResult, MarketplaceActions
from marketplace.domain.errors import ErrorKind

router = APIRouter()

ERROR_STATUS: dict[ErrorKind, int] = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.UNAUTHORIZED: 403,
    ErrorKind.INVALID_STATE: 409,
    ErrorKind.CONFLICT: 409,
    ErrorKind.VALIDATION_ERROR: 422,
    ErrorKind.OPERATION_FAILED: 500,
}


def _actions(request: Request) -> MarketplaceActions:
    return request.app.state.actions


def _respond(result: ActionResult[Any], success_status: int = 200) -> JSONResponse:
    if result.success:
        status = success_status
    else:
        assert result.error is not None
        status = ERROR_STATUS[result.error.kind]
    return JSONResponse(content=result.model_dump(mode="json"), status_code=status)


# ----------------------------------------------------------------------
# Requests
# ----------------------------------------------------------------------


@router.post("/requests")
def create_request(
    request: Request,
    payload: dict[str, Any] = Body(...),
    x_user_id: str | None = Header(default=None),
) -> JSONResponse:
    return _respond(_actions(request).create_request(x_user_id, payload), success_status=201)


@router.get("/requests")
def list_requests(request: Request) -> JSONResponse:
    """List requests; filters, paging, and ordering come from the query string."""
    return _respond(_actions(request).list_requests(dict(request.query_params)))


@router.get("/requests/search")
def search_requests(request: Request) -> JSONResponse:
    return _respond(_actions(request).search_requests(dict(request.query_params)))


@router.get("/requests/{request_id}")
def get_request_details(request: Request, request_id: str) -> JSONResponse:
    return _respond(_actions(request).get_request_details(request_id))


@router.patch("/requests/{request_id}")
def update_request(
    request: Request,
    request_id: str,
    payload: dict[str, Any] = Body(...),
    x_user_id: str | None = Header(default=None),
) -> JSONResponse:
    return _respond(_actions(request).update_request(x_user_id, request_id, payload))


@router.post("/requests/{request_id}/cancel")
def cancel_request(
    request: Request, request_id: str, x_user_id: str | None = Header(default=None)
) -> JSONResponse:
    return _respond(_actions(request).cancel_request(x_user_id, request_id))


# ----------------------------------------------------------------------
# Offers
# ----------------------------------------------------------------------


@router.get("/requests/{request_id}/offers")
def get_offers(
    request: Request, request_id: str, x_user_id: str | None = Header(default=None)
) -> JSONResponse:
    return _respond(_actions(request).get_offers(x_user_id, request_id))


@router.post("/requests/{request_id}/offers")
def create_offer(
    request: Request,
    request_id: str,
    payload: dict[str, Any] = Body(default_factory=dict),
    x_user_id: str | None = Header(default=None),
) -> JSONResponse:
    return _respond(
        _actions(request).create_offer(x_user_id, request_id, payload), success_status=201
    )


@router.patch("/offers/{offer_id}")
def update_offer(
    request: Request,
    offer_id: str,
    payload: dict[str, Any] = Body(...),
    x_user_id: str | None = Header(default=None),
) -> JSONResponse:
    return _respond(_actions(request).update_offer(x_user_id, offer_id, payload))


@router.get("/me/accepted-offers")
def get_user_accepted_offers(
    request: Request, x_user_id: str | None = Header(default=None)
) -> JSONResponse:
    return _respond(_actions(request).get_user_accepted_offers(x_user_id))


# ----------------------------------------------------------------------
# Negotiations and completion
# ----------------------------------------------------------------------


@router.get("/requests/{request_id}/negotiation")
def get_negotiation_by_request(
    request: Request, request_id: str, x_user_id: str | None = Header(default=None)
) -> JSONResponse:
    return _respond(_actions(request).get_negotiation_by_request(x_user_id, request_id))


@router.get("/negotiations/{negotiation_id}")
def get_negotiation(
    request: Request, negotiation_id: str, x_user_id: str | None = Header(default=None)
) -> JSONResponse:
    return _respond(_actions(request).get_negotiation(x_user_id, negotiation_id))


@router.post("/negotiations/{negotiation_id}/messages")
def send_negotiation_message(
    request: Request,
    negotiation_id: str,
    payload: dict[str, Any] = Body(...),
    x_user_id: str | None = Header(default=None),
) -> JSONResponse:
    return _respond(
        _actions(request).send_negotiation_message(x_user_id, negotiation_id, payload),
        success_status=201,
    )


@router.post("/requests/{request_id}/complete")
def complete_request(
    request: Request,
    request_id: str,
    payload: dict[str, Any] = Body(...),
    x_user_id: str | None = Header(default=None),
) -> JSONResponse:
    return _respond(
        _actions(request).complete_request(
            x_user_id, request_id, str(payload.get("negotiation_id", ""))
        )
    )


@router.post("/admin/negotiations/expire")
def expire_stale_negotiations(request: Request) -> JSONResponse:
    """Run the stale-negotiation sweep once."""
    return _respond(_actions(request).expire_stale_negotiations())
