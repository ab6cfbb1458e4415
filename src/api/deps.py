"""FastAPI dependencies wiring the request gate into routes."""

from fastapi import Depends, Request, Response
from fastapi.responses import JSONResponse

from src.api.responses import rejection_response
from src.logging.audit import generate_request_id, request_id_var
from src.security.gate import Proceed, Reject, run_gate
from src.store.factory import get_store
from src.store.store import GatewayStore


class GateRejected(Exception):
    """Raised by route dependencies so the app handler can render the rejection."""

    def __init__(self, reject: Reject, request_id: str):
        super().__init__(reject.reason.name)
        self.reject = reject
        self.request_id = request_id


def get_gateway_store() -> GatewayStore:
    """Store handle for the gate. Tests swap it via dependency_overrides."""
    return get_store()


def require_scope(scope: str | None = None):
    """Build a dependency that gates a route on a valid key holding ``scope``.

    On success the rate limit headers and request id are added to the
    route's response and the Proceed outcome is handed to the route.
    """

    async def gate_dependency(
        request: Request,
        response: Response,
        store: GatewayStore = Depends(get_gateway_store),
    ) -> Proceed:
        rid = generate_request_id()
        request_id_var.set(rid)

        outcome = await run_gate(request.headers, store, required_scope=scope)
        if isinstance(outcome, Reject):
            raise GateRejected(outcome, rid)

        response.headers.update(outcome.rate_info.headers())
        response.headers["X-Request-Id"] = rid
        return outcome

    return gate_dependency


async def gate_rejected_handler(request: Request, exc: GateRejected) -> JSONResponse:
    return rejection_response(exc.reject, exc.request_id)
