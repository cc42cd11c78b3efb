# Civix Civic-Engagement Portal
# FastAPI + MongoDB: complaints, petitions, polls and their hand-off to volunteers

import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from typing import List, Optional, Dict

import uvicorn
from fastapi import FastAPI, BackgroundTasks, Depends, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pymongo.errors import DuplicateKeyError
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from starlette.middleware.base import BaseHTTPMiddleware

from . import __version__
from .assignments import AssignmentCoordinator
from .config import new_id, now_utc
from .errors import PortalError, InvalidInput, Unauthenticated, Forbidden, DuplicateUser
from .identity import (
    oauth2_scheme, get_store, get_identity, require_role, hash_password, verify_password,
    create_access_token, user_to_response, revoke_token, issue_reset_token, reset_password,
)
from .ledger import Ledger, poll_expires_at, poll_is_active
from .lifecycle import Lifecycle
from .models import (
    UserRole, STAFF_ROLES, ALL_ROLES, SubjectKind, ExportKind, Identity,
    UserCreate, UserLogin, UserResponse, TokenResponse, PasswordResetRequest, PasswordReset,
    ComplaintCreate, ComplaintStatusUpdate, ComplaintAssign, ComplaintResponse,
    PetitionCreate, PetitionEdit, PetitionAssign, VolunteerUpdate, OfficialResponse, CommentCreate,
    PetitionResponse, SignatureResponse,
    PollCreate, PollResponse, VoteCast, VoteResponse, TallyResponse,
    AssignmentResponse, EngagementResponse, SummaryResponse, SentimentResponse, ExportResponse,
)
from .notifications import (
    NotificationLogNotifier, dispatch, assignment_notice, complaint_notice,
    password_reset_notice,
)
from .reporting import Reports
from .sentiment import SentimentAnalyzer
from .store import Store, as_utc

logger = logging.getLogger(__name__)

VOLUNTEER = UserRole.VOLUNTEER.value
CITIZEN = UserRole.CITIZEN.value
PUBLIC_ROLES = (UserRole.CITIZEN, UserRole.VOLUNTEER)

# ---------------------------------------------------------------------------
# App & Globals
# ---------------------------------------------------------------------------
app = FastAPI(title="Civix — Civic Engagement Portal", version=__version__)
limiter = Limiter(key_func=get_remote_address)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        return response


app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])


@app.exception_handler(PortalError)
async def portal_error_handler(request: Request, exc: PortalError):
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, Unauthenticated) else None
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(p) for p in first.get("loc", ()) if p not in ("body", "query", "path"))
    message = first.get("msg", "Invalid input")
    detail = f"{field}: {message}" if field else message
    return JSONResponse(status_code=400, content=InvalidInput(detail).to_dict())


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal server error", "code": "internal_error"})


# ---------------------------------------------------------------------------
# Startup / Shutdown
# ---------------------------------------------------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    if getattr(app.state, "store", None) is None:
        app.state.store = Store.connect()
    await app.state.store.startup()
    if getattr(app.state, "notifier", None) is None:
        app.state.notifier = NotificationLogNotifier(app.state.store)
    if getattr(app.state, "sentiment", None) is None:
        app.state.sentiment = SentimentAnalyzer()
    logger.info("Database initialized")
    yield
    app.state.store.close()

app.router.lifespan_context = lifespan

# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------
async def get_clock(request: Request):
    return getattr(request.app.state, "clock", None) or now_utc

async def get_notifier(request: Request):
    return getattr(request.app.state, "notifier", None)

async def get_assignments(store: Store = Depends(get_store), clock=Depends(get_clock)):
    return AssignmentCoordinator(store, clock=clock)

async def get_lifecycle(store: Store = Depends(get_store),
                        assignments: AssignmentCoordinator = Depends(get_assignments),
                        clock=Depends(get_clock)):
    return Lifecycle(store, assignments=assignments, clock=clock)

async def get_ledger(store: Store = Depends(get_store), clock=Depends(get_clock)):
    return Ledger(store, clock=clock)

async def get_reports(request: Request, store: Store = Depends(get_store), clock=Depends(get_clock)):
    return Reports(store, analyzer=getattr(request.app.state, "sentiment", None), clock=clock)

# ---------------------------------------------------------------------------
# Utility Helpers
# ---------------------------------------------------------------------------
def validate_id(value: str, param_name: str = "id") -> str:
    """Ids are UUID strings; anything else is rejected before touching the store."""
    if not isinstance(value, str):
        raise InvalidInput("Invalid parameter type")
    try:
        uuid.UUID(value)
    except (ValueError, AttributeError):
        raise InvalidInput(f"Invalid {param_name} format")
    return value

def complaint_to_response(c: dict) -> ComplaintResponse:
    return ComplaintResponse(**{k: v for k, v in c.items() if k != "_id"}, id=c["_id"])

def petition_to_response(p: dict, signed_by_me: Optional[bool] = None) -> PetitionResponse:
    return PetitionResponse(**{k: v for k, v in p.items() if k != "_id"}, id=p["_id"],
                            signed_by_me=signed_by_me)

def poll_to_response(p: dict, now: datetime, my_vote: Optional[str] = None) -> PollResponse:
    return PollResponse(
        id=p["_id"], title=p["title"], description=p.get("description", ""),
        category=p.get("category", ""), options=p["options"],
        duration_hours=p["duration_hours"], target_location=p.get("target_location", ""),
        created_by=p["created_by"], created_at=as_utc(p["created_at"]),
        expires_at=poll_expires_at(p), is_active=poll_is_active(p, now), my_vote=my_vote)

def assignment_to_response(a: dict) -> AssignmentResponse:
    return AssignmentResponse(**{k: v for k, v in a.items() if k != "_id"}, id=a["_id"])

async def load_user(store: Store, user_id: str) -> dict:
    user = await store.run(store.db.users.find_one, {"_id": user_id})
    if user is None:
        raise Unauthenticated("User not found")
    return user

def new_user_doc(data: UserCreate) -> dict:
    return {
        "_id": new_id(), "username": data.username,
        "hashed_password": hash_password(data.password),
        "full_name": data.full_name, "email": data.email,
        "location": data.location, "role": data.role.value,
        "created_at": now_utc(),
    }

async def insert_user(store: Store, doc: dict):
    existing = await store.run(store.db.users.find_one, {"username": doc["username"]})
    if existing:
        raise DuplicateUser()
    try:
        await store.run(store.db.users.insert_one, doc)
    except DuplicateKeyError:
        raise DuplicateUser()

# ---------------------------------------------------------------------------
# AUTH ENDPOINTS
# ---------------------------------------------------------------------------
@app.post("/auth/register", response_model=TokenResponse)
@limiter.limit("3/minute")
async def register(request: Request, user_data: UserCreate, store: Store = Depends(get_store)):
    # Officials and admins are created through the admin panel
    if user_data.role not in PUBLIC_ROLES:
        raise Forbidden("Public registration is for citizens and volunteers only.")
    user_doc = new_user_doc(user_data)
    await insert_user(store, user_doc)
    logger.info("Registered %s (%s)", user_doc["username"], user_doc["role"])
    return TokenResponse(access_token=create_access_token(user_doc), user=user_to_response(user_doc))

@app.post("/auth/login", response_model=TokenResponse)
@limiter.limit("5/minute")
async def login(request: Request, form: UserLogin, store: Store = Depends(get_store)):
    user = await store.run(store.db.users.find_one, {"username": form.username})
    if not user or not verify_password(form.password, user["hashed_password"]):
        raise Unauthenticated("Invalid credentials")
    return TokenResponse(access_token=create_access_token(user), user=user_to_response(user))

@app.get("/auth/me", response_model=UserResponse)
async def get_me(identity: Identity = Depends(get_identity), store: Store = Depends(get_store)):
    return user_to_response(await load_user(store, identity.user_id))

@app.post("/auth/logout")
async def logout(token: Optional[str] = Depends(oauth2_scheme),
                 identity: Identity = Depends(get_identity), store: Store = Depends(get_store)):
    await revoke_token(token, store)
    return {"detail": "Logged out successfully"}

@app.post("/auth/request-reset")
@limiter.limit("3/minute")
async def request_password_reset(request: Request, data: PasswordResetRequest, background_tasks: BackgroundTasks,
                                 store: Store = Depends(get_store), clock=Depends(get_clock),
                                 notifier=Depends(get_notifier)):
    user, token = await issue_reset_token(store, data.email, clock=clock)
    if user is not None:
        background_tasks.add_task(dispatch, notifier, password_reset_notice(user, token))
    # Same answer whether or not the email is known
    return {"detail": "If your email exists, you will receive a password reset link"}

@app.post("/auth/reset-password")
@limiter.limit("5/minute")
async def reset_password_route(request: Request, data: PasswordReset,
                               store: Store = Depends(get_store), clock=Depends(get_clock)):
    await reset_password(store, data.token, data.new_password, clock=clock)
    return {"detail": "Password has been reset successfully"}

@app.get("/auth/volunteers", response_model=List[UserResponse])
async def list_volunteers(location: Optional[str] = None,
                          identity: Identity = Depends(require_role(*STAFF_ROLES)),
                          store: Store = Depends(get_store)):
    fq = {"role": VOLUNTEER}
    if location:
        fq["location"] = location
    volunteers = await store.run(lambda: list(store.db.users.find(fq).sort("username", 1)))
    return [user_to_response(v) for v in volunteers]

# ---------------------------------------------------------------------------
# ADMIN USER MANAGEMENT ENDPOINTS
# ---------------------------------------------------------------------------
@app.get("/admin/users", response_model=List[UserResponse])
async def admin_list_users(role: Optional[str] = None,
                           identity: Identity = Depends(require_role(UserRole.ADMIN.value)),
                           store: Store = Depends(get_store)):
    query = {}
    if role and role in ALL_ROLES:
        query["role"] = role
    users = await store.run(lambda: list(store.db.users.find(query).sort("created_at", -1)))
    return [user_to_response(u) for u in users]

@app.post("/admin/users", response_model=UserResponse, status_code=201)
async def admin_create_user(user_data: UserCreate,
                            identity: Identity = Depends(require_role(UserRole.ADMIN.value)),
                            store: Store = Depends(get_store)):
    user_doc = new_user_doc(user_data)
    await insert_user(store, user_doc)
    logger.info("Admin %s created user %s (%s)", identity.username, user_data.username, user_data.role.value)
    return user_to_response(user_doc)

# ---------------------------------------------------------------------------
# COMPLAINT ENDPOINTS
# ---------------------------------------------------------------------------
@app.post("/complaints", response_model=ComplaintResponse, status_code=201)
async def create_complaint(data: ComplaintCreate, background_tasks: BackgroundTasks,
                           identity: Identity = Depends(require_role(CITIZEN)),
                           lifecycle: Lifecycle = Depends(get_lifecycle),
                           notifier=Depends(get_notifier)):
    complaint = await lifecycle.create_complaint(identity, data)
    background_tasks.add_task(dispatch, notifier, complaint_notice(complaint))
    return complaint_to_response(complaint)

@app.get("/complaints", response_model=List[ComplaintResponse])
async def list_complaints(category: Optional[str] = None, status: Optional[str] = None,
                          assigned_to: Optional[str] = None,
                          limit: int = Query(50, ge=1, le=100), skip: int = Query(0, ge=0, le=10000),
                          identity: Identity = Depends(require_role(*STAFF_ROLES)),
                          lifecycle: Lifecycle = Depends(get_lifecycle)):
    complaints = await lifecycle.list_complaints(
        category=category, status=status, assigned_to=assigned_to, limit=limit, skip=skip)
    return [complaint_to_response(c) for c in complaints]

@app.get("/complaints/mine", response_model=List[ComplaintResponse])
async def my_complaints(identity: Identity = Depends(get_identity),
                        lifecycle: Lifecycle = Depends(get_lifecycle)):
    return [complaint_to_response(c) for c in await lifecycle.list_complaints(created_by=identity.user_id)]

@app.get("/complaints/{complaint_id}", response_model=ComplaintResponse)
async def get_complaint(complaint_id: str, identity: Identity = Depends(get_identity),
                        lifecycle: Lifecycle = Depends(get_lifecycle)):
    complaint = await lifecycle.get_complaint(validate_id(complaint_id, "complaint_id"))
    if identity.role.value not in STAFF_ROLES and identity.user_id not in (
            complaint["created_by"], complaint.get("assigned_to")):
        raise Forbidden()
    return complaint_to_response(complaint)

@app.put("/complaints/{complaint_id}/assign", response_model=ComplaintResponse)
async def assign_complaint(complaint_id: str, body: ComplaintAssign, background_tasks: BackgroundTasks,
                           identity: Identity = Depends(require_role(*STAFF_ROLES)),
                           assignments: AssignmentCoordinator = Depends(get_assignments),
                           notifier=Depends(get_notifier)):
    assignment, complaint = await assignments.assign(
        SubjectKind.COMPLAINT, validate_id(complaint_id, "complaint_id"), body.volunteer_id, identity,
        note=body.note, due_date=body.due_date, notify_by_email=body.notify_by_email)
    if assignment["notify_by_email"]:
        background_tasks.add_task(dispatch, notifier, assignment_notice(assignment, complaint))
    return complaint_to_response(complaint)

@app.put("/complaints/{complaint_id}/status", response_model=ComplaintResponse)
async def update_complaint_status(complaint_id: str, body: ComplaintStatusUpdate,
                                  identity: Identity = Depends(require_role(VOLUNTEER, *STAFF_ROLES)),
                                  lifecycle: Lifecycle = Depends(get_lifecycle)):
    return complaint_to_response(await lifecycle.update_complaint_status(
        validate_id(complaint_id, "complaint_id"), identity, body.status, body.note))

# ---------------------------------------------------------------------------
# PETITION ENDPOINTS
# ---------------------------------------------------------------------------
@app.post("/petitions", response_model=PetitionResponse, status_code=201)
async def create_petition(data: PetitionCreate,
                          identity: Identity = Depends(require_role(CITIZEN, *STAFF_ROLES)),
                          lifecycle: Lifecycle = Depends(get_lifecycle),
                          store: Store = Depends(get_store)):
    user = await load_user(store, identity.user_id)
    petition = await lifecycle.create_petition(identity, data, default_location=user.get("location"))
    return petition_to_response(petition)

@app.get("/petitions", response_model=List[PetitionResponse])
async def list_petitions(category: Optional[str] = None, status: Optional[str] = None,
                         location: Optional[str] = None,
                         limit: int = Query(50, ge=1, le=100), skip: int = Query(0, ge=0, le=10000),
                         identity: Identity = Depends(get_identity),
                         lifecycle: Lifecycle = Depends(get_lifecycle)):
    petitions = await lifecycle.list_petitions(
        category=category, status=status, location=location, limit=limit, skip=skip)
    return [petition_to_response(p) for p in petitions]

@app.get("/petitions/mine", response_model=List[PetitionResponse])
async def my_petitions(identity: Identity = Depends(get_identity),
                       lifecycle: Lifecycle = Depends(get_lifecycle)):
    return [petition_to_response(p) for p in await lifecycle.list_petitions(creator=identity.user_id)]

@app.get("/petitions/local", response_model=List[PetitionResponse])
async def local_petitions(identity: Identity = Depends(get_identity),
                          lifecycle: Lifecycle = Depends(get_lifecycle),
                          store: Store = Depends(get_store)):
    user = await load_user(store, identity.user_id)
    if not user.get("location"):
        raise InvalidInput("User has no location set")
    return [petition_to_response(p) for p in await lifecycle.list_petitions(location=user["location"])]

@app.get("/petitions/{petition_id}", response_model=PetitionResponse)
async def get_petition(petition_id: str, identity: Identity = Depends(get_identity),
                       lifecycle: Lifecycle = Depends(get_lifecycle),
                       ledger: Ledger = Depends(get_ledger)):
    petition = await lifecycle.get_petition(validate_id(petition_id, "petition_id"))
    signed = await ledger.has_signed(petition_id, identity.user_id)
    return petition_to_response(petition, signed_by_me=signed)

@app.put("/petitions/{petition_id}", response_model=PetitionResponse)
async def edit_petition(petition_id: str, edit: PetitionEdit,
                        identity: Identity = Depends(get_identity),
                        lifecycle: Lifecycle = Depends(get_lifecycle)):
    return petition_to_response(await lifecycle.edit_petition(
        validate_id(petition_id, "petition_id"), identity, edit))

@app.post("/petitions/{petition_id}/sign", response_model=SignatureResponse, status_code=201)
async def sign_petition(petition_id: str, identity: Identity = Depends(get_identity),
                        ledger: Ledger = Depends(get_ledger)):
    signature = await ledger.sign_petition(validate_id(petition_id, "petition_id"), identity.user_id)
    return SignatureResponse(**{k: v for k, v in signature.items() if k != "_id"})

@app.post("/petitions/{petition_id}/comment", response_model=PetitionResponse)
async def comment_petition(petition_id: str, body: CommentCreate,
                           identity: Identity = Depends(get_identity),
                           lifecycle: Lifecycle = Depends(get_lifecycle)):
    return petition_to_response(await lifecycle.add_comment(
        validate_id(petition_id, "petition_id"), identity, body.text))

@app.put("/petitions/{petition_id}/assign", response_model=PetitionResponse)
async def assign_petition(petition_id: str, body: PetitionAssign, background_tasks: BackgroundTasks,
                          identity: Identity = Depends(require_role(*STAFF_ROLES)),
                          assignments: AssignmentCoordinator = Depends(get_assignments),
                          notifier=Depends(get_notifier)):
    assignment, petition = await assignments.assign(
        SubjectKind.PETITION, validate_id(petition_id, "petition_id"), body.assigned_to, identity,
        note=body.note, due_date=body.due_date, notify_by_email=body.notify_by_email)
    if assignment["notify_by_email"]:
        background_tasks.add_task(dispatch, notifier, assignment_notice(assignment, petition))
    return petition_to_response(petition)

@app.put("/petitions/{petition_id}/volunteer-update", response_model=PetitionResponse)
async def volunteer_update(petition_id: str, body: VolunteerUpdate,
                           identity: Identity = Depends(require_role(VOLUNTEER, *STAFF_ROLES)),
                           lifecycle: Lifecycle = Depends(get_lifecycle)):
    return petition_to_response(await lifecycle.volunteer_update(
        validate_id(petition_id, "petition_id"), identity, body.status, body.note))

@app.put("/petitions/{petition_id}/respond", response_model=PetitionResponse)
async def respond_petition(petition_id: str, body: OfficialResponse,
                           identity: Identity = Depends(require_role(*STAFF_ROLES)),
                           lifecycle: Lifecycle = Depends(get_lifecycle)):
    return petition_to_response(await lifecycle.respond(
        validate_id(petition_id, "petition_id"), identity, body.official_response, body.status))

# ---------------------------------------------------------------------------
# POLL ENDPOINTS
# ---------------------------------------------------------------------------
async def _votes_by(store: Store, voter_id: str, poll_ids: List[str]) -> Dict[str, str]:
    rows = await store.run(lambda: list(store.db.votes.find(
        {"voter_id": voter_id, "poll_id": {"$in": poll_ids}})))
    return {r["poll_id"]: r["selected_option"] for r in rows}

@app.post("/polls", response_model=PollResponse, status_code=201)
async def create_poll(data: PollCreate, identity: Identity = Depends(require_role(*STAFF_ROLES)),
                      lifecycle: Lifecycle = Depends(get_lifecycle), clock=Depends(get_clock)):
    return poll_to_response(await lifecycle.create_poll(identity, data), clock())

@app.get("/polls", response_model=List[PollResponse])
async def list_polls(target_location: Optional[str] = None, active_only: bool = False,
                     identity: Identity = Depends(get_identity),
                     lifecycle: Lifecycle = Depends(get_lifecycle),
                     store: Store = Depends(get_store), clock=Depends(get_clock)):
    polls = await lifecycle.list_polls(target_location=target_location, active_only=active_only)
    mine = await _votes_by(store, identity.user_id, [p["_id"] for p in polls])
    now = clock()
    return [poll_to_response(p, now, mine.get(p["_id"])) for p in polls]

@app.get("/polls/{poll_id}", response_model=PollResponse)
async def get_poll(poll_id: str, identity: Identity = Depends(get_identity),
                   ledger: Ledger = Depends(get_ledger), clock=Depends(get_clock)):
    poll = await ledger.get_poll(validate_id(poll_id, "poll_id"))
    return poll_to_response(poll, clock(), await ledger.vote_of(poll_id, identity.user_id))

@app.post("/polls/{poll_id}/vote", response_model=VoteResponse, status_code=201)
async def cast_vote(poll_id: str, body: VoteCast, identity: Identity = Depends(get_identity),
                    ledger: Ledger = Depends(get_ledger)):
    vote = await ledger.cast_vote(validate_id(poll_id, "poll_id"), identity.user_id, body.selected_option)
    return VoteResponse(**{k: v for k, v in vote.items() if k != "_id"})

@app.get("/polls/{poll_id}/results", response_model=TallyResponse)
async def poll_results(poll_id: str, identity: Identity = Depends(get_identity),
                       ledger: Ledger = Depends(get_ledger)):
    return await ledger.tally(validate_id(poll_id, "poll_id"))

# ---------------------------------------------------------------------------
# VOLUNTEER ENDPOINTS
# ---------------------------------------------------------------------------
@app.get("/volunteers/me/assignments", response_model=List[AssignmentResponse])
async def my_assignments(kind: Optional[SubjectKind] = None,
                         identity: Identity = Depends(require_role(VOLUNTEER)),
                         assignments: AssignmentCoordinator = Depends(get_assignments)):
    return [assignment_to_response(a) for a in await assignments.assignments_for(identity.user_id, kind)]

@app.get("/volunteers/me/complaints", response_model=List[ComplaintResponse])
async def my_assigned_complaints(identity: Identity = Depends(require_role(VOLUNTEER)),
                                 lifecycle: Lifecycle = Depends(get_lifecycle)):
    return [complaint_to_response(c) for c in await lifecycle.list_complaints(assigned_to=identity.user_id)]

@app.get("/volunteers/me/petitions", response_model=List[PetitionResponse])
async def my_assigned_petitions(identity: Identity = Depends(require_role(VOLUNTEER)),
                                lifecycle: Lifecycle = Depends(get_lifecycle)):
    return [petition_to_response(p) for p in await lifecycle.list_petitions(assigned_to=identity.user_id)]

# ---------------------------------------------------------------------------
# REPORT ENDPOINTS
# ---------------------------------------------------------------------------
@app.get("/reports/summary", response_model=SummaryResponse)
async def report_summary(identity: Identity = Depends(require_role(*STAFF_ROLES)),
                         reports: Reports = Depends(get_reports)):
    return await reports.summary()

@app.get("/reports/engagement", response_model=EngagementResponse)
async def report_engagement(months: int = Query(12, ge=1, le=36),
                            identity: Identity = Depends(require_role(*STAFF_ROLES)),
                            reports: Reports = Depends(get_reports)):
    return await reports.engagement(months)

@app.get("/reports/categories")
async def report_categories(identity: Identity = Depends(require_role(*STAFF_ROLES)),
                            reports: Reports = Depends(get_reports)):
    return await reports.category_breakdown()

@app.get("/reports/export", response_model=ExportResponse)
async def report_export(identity: Identity = Depends(require_role(*STAFF_ROLES)),
                        reports: Reports = Depends(get_reports)):
    return ExportResponse(
        petitions_csv=await reports.export_csv(ExportKind.PETITIONS),
        polls_csv=await reports.export_csv(ExportKind.POLLS),
        complaints_csv=await reports.export_csv(ExportKind.COMPLAINTS))

@app.get("/reports/export/{kind}.csv")
async def report_export_file(kind: ExportKind,
                             identity: Identity = Depends(require_role(*STAFF_ROLES)),
                             reports: Reports = Depends(get_reports), clock=Depends(get_clock)):
    filename = f"civix_{kind.value}_{clock().strftime('%Y%m%d_%H%M%S')}.csv"
    return Response(content=await reports.export_csv(kind), media_type="text/csv",
                    headers={"Content-Disposition": f'attachment; filename="{filename}"',
                             "Access-Control-Expose-Headers": "Content-Disposition"})

@app.get("/reports/sentiment", response_model=SentimentResponse)
async def report_sentiment(identity: Identity = Depends(require_role(*STAFF_ROLES)),
                           reports: Reports = Depends(get_reports)):
    return await reports.sentiment()

@app.get("/reports/sentiment/{kind}/{entity_id}", response_model=SentimentResponse)
async def report_entity_sentiment(kind: str, entity_id: str,
                                  identity: Identity = Depends(get_identity),
                                  reports: Reports = Depends(get_reports)):
    return await reports.entity_sentiment(kind, validate_id(entity_id, "entity_id"))

# ---------------------------------------------------------------------------
# HEALTH
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    return {"status": "healthy", "system": "Civix Portal", "timestamp": now_utc()}


def main():
    uvicorn.run(app, host="0.0.0.0", port=8000)


if __name__ == "__main__":
    main()
