"""
Flight-Delay Insurance Kernel API — FastAPI endpoints.

Exposes the kernel's boundary operations via a REST API for:
- Policy purchase and queries
- Oracle flight-info updates
- Claim evaluation and the claim sweeper
- Treasury withdrawal
- Audit ledger inspection

Callers identify themselves with the X-Caller-Id header; roles come from
the RoleRegistry. Authentication is expected upstream of this app.
"""

from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from fdi_kernel.audit.ledger import AuditLedger
from fdi_kernel.authorization.roles import Caller, Role, RoleRegistry, require_role
from fdi_kernel.errors import (
    FlightInsuranceError,
    IncorrectPremium,
    InvalidSchedule,
    PolicyNotActive,
    PolicyNotFound,
    SettlementFailure,
    Unauthorized,
)
from fdi_kernel.evaluator.engine import ClaimEvaluator
from fdi_kernel.ingest.flight_info import FlightInfoIngest
from fdi_kernel.models.config import PolicyConfig, SweeperConfig
from fdi_kernel.models.policy import FlightStatus
from fdi_kernel.policy_store.store import PolicyStore
from fdi_kernel.settlement.gateway import InMemorySettlementGateway, SettlementGateway
from fdi_kernel.settlement.treasury import Treasury
from fdi_kernel.sweeper.loop import ClaimSweeper

ERROR_STATUS = {
    PolicyNotFound: 404,
    PolicyNotActive: 409,
    Unauthorized: 403,
    InvalidSchedule: 422,
    IncorrectPremium: 422,
    SettlementFailure: 502,
}


# --- Request/Response Models ---

class PolicyCreateRequest(BaseModel):
    flight_code: str
    scheduled_departure: int
    scheduled_arrival: int
    paid_amount: int


class FlightInfoRequest(BaseModel):
    actual_arrival: Optional[int] = None
    flight_status: FlightStatus = FlightStatus.NORMAL


class EvaluateRequest(BaseModel):
    now: Optional[int] = None


class SweepRequest(BaseModel):
    now: Optional[int] = None


class WithdrawRequest(BaseModel):
    destination: str


class EscalationResolveRequest(BaseModel):
    resolution: str


# --- Application Factory ---

def create_app(
    policy_config: Optional[PolicyConfig] = None,
    store: Optional[PolicyStore] = None,
    gateway: Optional[SettlementGateway] = None,
    ledger: Optional[AuditLedger] = None,
    roles: Optional[RoleRegistry] = None,
    sweeper_config: Optional[SweeperConfig] = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""

    app = FastAPI(
        title="Flight-Delay Insurance Kernel API",
        description="Policy lifecycle and claim evaluation",
        version="0.1.0",
    )

    # Initialize components
    if store is not None:
        if ledger is not None and ledger is not store.ledger:
            raise ValueError("ledger must be the store's ledger when both are given")
        ps = store
    else:
        ps = PolicyStore(
            config=policy_config or PolicyConfig.from_env(),
            ledger=ledger or AuditLedger(),
        )
    al = ps.ledger
    gw = gateway or InMemorySettlementGateway()
    rr = roles or RoleRegistry.from_env()
    ingest = FlightInfoIngest(ps)
    evaluator = ClaimEvaluator(ps, gw, al)
    treasury = Treasury(gw, al)
    sweeper = ClaimSweeper(ps, evaluator, sweeper_config)

    # Store components on app state for access in tests and endpoints
    app.state.store = ps
    app.state.gateway = gw
    app.state.ledger = al
    app.state.roles = rr
    app.state.evaluator = evaluator
    app.state.sweeper = sweeper

    @app.exception_handler(FlightInsuranceError)
    async def handle_kernel_error(request: Request, exc: FlightInsuranceError):
        status = ERROR_STATUS.get(type(exc), 400)
        return JSONResponse(
            status_code=status,
            content={"error": exc.kind, "detail": exc.message},
        )

    def current_caller(x_caller_id: str = Header(...)) -> Caller:
        return rr.resolve(x_caller_id)

    # === POLICIES ===

    @app.post("/policies")
    def create_policy(req: PolicyCreateRequest, caller: Caller = Depends(current_caller)):
        """Purchase a policy. The caller becomes the holder."""
        policy_id = ps.create_policy(
            holder=caller.id,
            flight_code=req.flight_code,
            scheduled_departure=req.scheduled_departure,
            scheduled_arrival=req.scheduled_arrival,
            paid_amount=req.paid_amount,
        )
        # Premiums fund payouts and withdrawals
        gw.deposit(req.paid_amount)
        return {"id": policy_id, "policy": ps.get_policy(policy_id).model_dump(mode="json")}

    @app.get("/policies/{policy_id}")
    def get_policy(policy_id: int):
        return ps.get_policy(policy_id).model_dump(mode="json")

    @app.get("/holders/{holder}/policies")
    def get_policies_by_holder(holder: str):
        return {"holder": holder, "policy_ids": ps.get_policies_by_holder(holder)}

    @app.put("/policies/{policy_id}/flight-info")
    def update_flight_info(
        policy_id: int,
        req: FlightInfoRequest,
        caller: Caller = Depends(current_caller),
    ):
        """Oracle or admin records observed flight data."""
        policy = ingest.update_flight_info(
            caller, policy_id, req.actual_arrival, req.flight_status
        )
        return policy.model_dump(mode="json")

    @app.post("/policies/{policy_id}/evaluate")
    def evaluate_policy(
        policy_id: int,
        req: Optional[EvaluateRequest] = None,
        caller: Caller = Depends(current_caller),
    ):
        now = req.now if req else None
        result = evaluator.evaluate(caller, policy_id, now)
        return result.model_dump(mode="json")

    # === TREASURY ===

    @app.post("/treasury/withdraw")
    def withdraw_all(req: WithdrawRequest, caller: Caller = Depends(current_caller)):
        receipt = treasury.withdraw_all(caller, req.destination)
        return receipt.model_dump(mode="json")

    # === SWEEPER ===

    @app.get("/sweeper/status")
    def sweeper_status():
        return {
            "status": sweeper.status,
            "config": sweeper.config.model_dump(),
            "active_policies": len(ps.get_active_policy_ids()),
            "pending_escalations": len(sweeper.pending_escalations),
            "last_swept_at": sweeper.last_swept_at,
        }

    @app.post("/sweeper/trigger")
    def trigger_sweep(
        req: Optional[SweepRequest] = None,
        caller: Caller = Depends(current_caller),
    ):
        """Force a sweep over all Active policies."""
        require_role(caller, Role.ADMIN)
        results = sweeper.sweep_once(req.now if req else None)
        return {"results": results, "evaluated": len(results)}

    @app.get("/escalations/pending")
    def get_pending_escalations(caller: Caller = Depends(current_caller)):
        require_role(caller, Role.ADMIN)
        return sweeper.pending_escalations

    @app.post("/escalations/{escalation_id}/resolve")
    def resolve_escalation(
        escalation_id: str,
        req: EscalationResolveRequest,
        caller: Caller = Depends(current_caller),
    ):
        require_role(caller, Role.ADMIN)
        result = sweeper.resolve_escalation(escalation_id, req.resolution, caller.id)
        if not result:
            raise HTTPException(404, "Escalation not found or already resolved")
        return result

    # === AUDIT ===

    @app.get("/audit")
    def get_audit(limit: int = 50):
        return [e.model_dump(mode="json") for e in al.query_recent(limit=limit)]

    @app.get("/audit/verify")
    def verify_audit():
        return {
            "integrity_valid": al.verify_chain_integrity(),
            "total_events": al.count(),
        }

    @app.get("/audit/policies/{policy_id}")
    def get_policy_audit(policy_id: int):
        ps.get_policy(policy_id)
        return [e.model_dump(mode="json") for e in al.query_by_policy(policy_id)]

    return app


# Default application instance
app = create_app()
