# Enums and request/response records for the Civix portal

from datetime import datetime
from enum import Enum
from typing import List, Optional, Dict, Any

from pydantic import BaseModel, Field, field_validator

from .config import DEFAULT_SIGNATURE_GOAL, DEFAULT_POLL_DURATION_HOURS


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class UserRole(str, Enum):
    CITIZEN = "citizen"
    OFFICIAL = "official"
    VOLUNTEER = "volunteer"
    ADMIN = "admin"


STAFF_ROLES = (UserRole.OFFICIAL.value, UserRole.ADMIN.value)
ALL_ROLES = tuple(r.value for r in UserRole)


class ComplaintStatus(str, Enum):
    RECEIVED = "received"
    IN_REVIEW = "in_review"
    RESOLVED = "resolved"


class PetitionStatus(str, Enum):
    ACTIVE = "active"
    ASSIGNED = "assigned"
    UNDER_REVIEW = "under_review"
    RESOLVED = "resolved"
    CLOSED = "closed"


class AssignmentStatus(str, Enum):
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class SubjectKind(str, Enum):
    PETITION = "petition"
    COMPLAINT = "complaint"


class ExportKind(str, Enum):
    PETITIONS = "petitions"
    POLLS = "polls"
    COMPLAINTS = "complaints"


class Sentiment(str, Enum):
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------
class Identity(BaseModel):
    user_id: str
    role: UserRole
    username: str


def _bcrypt_sized(password: str) -> str:
    # bcrypt only reads the first 72 bytes
    if len(password.encode("utf-8")) > 72:
        raise ValueError("Password cannot exceed 72 bytes")
    return password


class UserCreate(BaseModel):
    username: str = Field(..., min_length=3, max_length=50)
    password: str = Field(..., min_length=6, max_length=72)
    full_name: str = Field(..., max_length=200)
    email: str = Field(..., max_length=320)
    location: str = Field(..., max_length=100)
    role: UserRole = UserRole.CITIZEN

    @field_validator("password")
    @classmethod
    def validate_password(cls, v):
        return _bcrypt_sized(v)


class UserLogin(BaseModel):
    username: str
    password: str


class PasswordResetRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=320)


class PasswordReset(BaseModel):
    token: str = Field(..., min_length=1, max_length=200)
    new_password: str = Field(..., min_length=6, max_length=72)

    @field_validator("new_password")
    @classmethod
    def validate_password(cls, v):
        return _bcrypt_sized(v)


class UserResponse(BaseModel):
    id: str
    username: str
    full_name: str
    email: str
    location: Optional[str] = None
    role: UserRole
    created_at: datetime


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse


# ---------------------------------------------------------------------------
# Shared
# ---------------------------------------------------------------------------
class HistoryEntry(BaseModel):
    status: str
    by: str
    note: Optional[str] = None
    at: datetime


class Comment(BaseModel):
    id: str
    by: str
    text: str
    at: datetime


# ---------------------------------------------------------------------------
# Complaints
# ---------------------------------------------------------------------------
class ComplaintCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1, max_length=5000)
    category: str = Field(..., min_length=1, max_length=100)
    location: str = Field(..., min_length=1, max_length=100)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    photo_url: Optional[str] = Field(None, max_length=2000)


class ComplaintStatusUpdate(BaseModel):
    # Kept as a plain string so unknown values surface as invalid_status (400)
    status: str
    note: Optional[str] = Field(None, max_length=2000)


class ComplaintResponse(BaseModel):
    id: str
    title: str
    description: str
    category: str
    location: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    photo_url: Optional[str] = None
    status: ComplaintStatus
    created_by: str
    assigned_to: Optional[str] = None
    status_history: List[HistoryEntry] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


# ---------------------------------------------------------------------------
# Petitions
# ---------------------------------------------------------------------------
class PetitionCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    summary: Optional[str] = Field(None, max_length=1000)
    description: str = Field(..., min_length=1, max_length=10000)
    category: str = Field(..., min_length=1, max_length=100)
    location: Optional[str] = Field(None, max_length=100)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    target_authority: str = Field(..., min_length=1, max_length=150)
    signature_goal: int = Field(DEFAULT_SIGNATURE_GOAL, ge=1)


class PetitionEdit(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    summary: Optional[str] = Field(None, max_length=1000)
    description: Optional[str] = Field(None, min_length=1, max_length=10000)
    category: Optional[str] = Field(None, min_length=1, max_length=100)
    location: Optional[str] = Field(None, max_length=100)


class PetitionAssign(BaseModel):
    assigned_to: str
    note: Optional[str] = Field(None, max_length=2000)
    due_date: Optional[datetime] = None
    notify_by_email: bool = True


class VolunteerUpdate(BaseModel):
    status: Optional[str] = None
    note: Optional[str] = Field(None, max_length=2000)


class OfficialResponse(BaseModel):
    official_response: Optional[str] = Field(None, max_length=10000)
    status: Optional[str] = None


class CommentCreate(BaseModel):
    text: str = Field(..., min_length=1, max_length=2000)


class PetitionResponse(BaseModel):
    id: str
    title: str
    summary: Optional[str] = None
    description: str
    category: str
    location: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    target_authority: str
    signature_goal: int
    signatures_count: int = 0
    status: PetitionStatus
    creator: str
    assigned_to: Optional[str] = None
    official_response: Optional[str] = None
    status_history: List[HistoryEntry] = Field(default_factory=list)
    comments: List[Comment] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime
    signed_by_me: Optional[bool] = None


class SignatureResponse(BaseModel):
    petition_id: str
    signer_id: str
    signed_at: datetime
    signatures_count: int


# ---------------------------------------------------------------------------
# Polls
# ---------------------------------------------------------------------------
class PollCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field("", max_length=5000)
    category: str = Field("General", max_length=100)
    options: List[str] = Field(..., min_length=2, max_length=20)
    duration_hours: int = Field(DEFAULT_POLL_DURATION_HOURS, ge=1)
    target_location: str = Field("", max_length=100)

    @field_validator("options")
    @classmethod
    def validate_options(cls, v):
        cleaned = [o.strip() for o in v]
        if any(not o for o in cleaned):
            raise ValueError("Poll options cannot be blank")
        if len(set(cleaned)) != len(cleaned):
            raise ValueError("Poll options must be distinct")
        return cleaned


class VoteCast(BaseModel):
    selected_option: str


class PollResponse(BaseModel):
    id: str
    title: str
    description: str
    category: str
    options: List[str]
    duration_hours: int
    target_location: str
    created_by: str
    created_at: datetime
    expires_at: datetime
    is_active: bool
    my_vote: Optional[str] = None


class VoteResponse(BaseModel):
    poll_id: str
    voter_id: str
    selected_option: str
    cast_at: datetime


class OptionTally(BaseModel):
    option: str
    count: int
    percentage: int


class TallyResponse(BaseModel):
    poll_id: str
    total: int
    counts: Dict[str, int]
    percentages: Dict[str, int]
    options: List[OptionTally]


# ---------------------------------------------------------------------------
# Assignments
# ---------------------------------------------------------------------------
class ComplaintAssign(BaseModel):
    volunteer_id: str
    note: Optional[str] = Field(None, max_length=2000)
    due_date: Optional[datetime] = None
    notify_by_email: bool = True


class AssignmentResponse(BaseModel):
    id: str
    subject_id: str
    subject_kind: SubjectKind
    assignee_id: str
    assigned_by: str
    status: AssignmentStatus
    notify_by_email: bool = True
    due_date: Optional[datetime] = None
    assigned_at: datetime
    updated_at: datetime
    subject_title: Optional[str] = None
    subject_status: Optional[str] = None


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------
class EngagementResponse(BaseModel):
    months: List[str]
    petitions: List[int]
    signatures: List[int]
    votes: List[int]
    complaints: List[int]


class SummaryResponse(BaseModel):
    total_complaints: int
    total_petitions: int
    total_polls: int
    active_polls: int
    total_votes: int
    total_signatures: int
    complaint_status_distribution: Dict[str, int] = Field(default_factory=dict)
    petition_status_distribution: Dict[str, int] = Field(default_factory=dict)
    open_assignments: int = 0


class SentimentResponse(BaseModel):
    results: Dict[str, int]
    percentages: Dict[str, int]
    total: int
    type: str


class ExportResponse(BaseModel):
    petitions_csv: str
    polls_csv: str
    complaints_csv: str


class Notice(BaseModel):
    user_id: str
    kind: str
    message: str
    extra: Dict[str, Any] = Field(default_factory=dict)
