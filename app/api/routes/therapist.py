"""
Therapist API Endpoints.

Session creation, partner turns, partner threads and completion polling
for the two-partner mediation flow.
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.mediation import (
    MediationService,
    MessageRecord,
    SessionStatus,
    SqlAlchemyMediationStore,
)
from app.core.mediation.events import get_finalization_notifier
from app.infra.database import get_db
from app.models.database import MessageRole

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/therapist", tags=["Therapist"])


class CamelModel(BaseModel):
    """Accepts both camelCase aliases and field names."""

    model_config = ConfigDict(populate_by_name=True)


class CreateSessionRequest(CamelModel):
    """Session creation request."""

    partner_names: Optional[str] = Field(
        default=None,
        alias="partnerNames",
        description="Both partner names joined by ' & '",
        examples=["Alice & Bob"],
    )


class CreateSessionResponse(CamelModel):
    """Created session."""

    session_id: str = Field(..., alias="sessionId")
    partner_names: str = Field(..., alias="partnerNames")


class SessionResponse(CamelModel):
    """Session details."""

    session_id: str = Field(..., alias="sessionId")
    partner_names: str = Field(..., alias="partnerNames")
    partners: list[str]
    created_at: datetime = Field(..., alias="createdAt")


class HistoryMessage(CamelModel):
    """One message of a client-supplied partner thread."""

    role: MessageRole
    message: str
    name: Optional[str] = None


class ChatRequest(CamelModel):
    """Partner turn request."""

    session_id: Optional[str] = Field(default=None, alias="sessionId")
    partner_name: Optional[str] = Field(default=None, alias="partnerName")
    message: Optional[str] = Field(
        default=None,
        description="Partner's message, or START_CONVERSATION to let the AI open",
        max_length=4000,
    )
    messages: Optional[list[HistoryMessage]] = Field(
        default=None,
        description="Partner thread so far; rebuilt from the session log when omitted",
    )


class MessageResponse(CamelModel):
    """One entry of a partner thread."""

    seq: int
    role: str
    name: Optional[str] = None
    message: str
    created_at: datetime = Field(..., alias="createdAt")


class ChatResponse(CamelModel):
    """Partner turn response."""

    message: str = Field(..., description="AI reply")
    summary: Optional[str] = Field(
        default=None,
        description="The reply again when it is a perspective summary",
    )
    finalized: bool = Field(
        default=False,
        description="Whether this turn completed the session",
    )


class SummaryResponse(CamelModel):
    """A partner summary."""

    partner_name: str = Field(..., alias="partnerName")
    summary_text: str = Field(..., alias="summaryText")
    created_at: datetime = Field(..., alias="createdAt")


class StatusResponse(CamelModel):
    """Session completion status."""

    session_id: str = Field(..., alias="sessionId")
    stages: dict[str, str]
    both_completed: bool = Field(..., alias="bothCompleted")
    solution: Optional[MessageResponse] = None
    current_partner_summary: Optional[SummaryResponse] = Field(
        default=None, alias="currentPartnerSummary"
    )
    other_partner_summary: Optional[SummaryResponse] = Field(
        default=None, alias="otherPartnerSummary"
    )


class PartnerAvailability(CamelModel):
    """Whether a partner slot was already taken."""

    name: str
    is_used: bool = Field(..., alias="isUsed")


class ErrorResponse(BaseModel):
    """Error response."""

    error: str
    detail: Optional[str] = None


def get_mediation_service(db: AsyncSession = Depends(get_db)) -> MediationService:
    """FastAPI dependency that provides a request-scoped MediationService."""
    return MediationService(
        SqlAlchemyMediationStore(db),
        notifier=get_finalization_notifier(),
    )


def _message_response(entry: MessageRecord) -> MessageResponse:
    return MessageResponse(
        seq=entry.seq,
        role=entry.role.value,
        name=entry.author,
        message=entry.text,
        created_at=entry.created_at,
    )


def _summary_response(summary) -> Optional[SummaryResponse]:
    if summary is None:
        return None
    return SummaryResponse(
        partner_name=summary.partner_name,
        summary_text=summary.text,
        created_at=summary.created_at,
    )


@router.post(
    "/sessions",
    response_model=CreateSessionResponse,
    response_model_by_alias=True,
    status_code=status.HTTP_201_CREATED,
    summary="Create a mediation session",
    responses={
        400: {"model": ErrorResponse, "description": "Invalid partner names"},
    },
)
async def create_session(
    request: CreateSessionRequest,
    service: MediationService = Depends(get_mediation_service),
) -> CreateSessionResponse:
    """Create a session for two partners ("Alice & Bob")."""
    session = await service.create_session(request.partner_names)
    return CreateSessionResponse(
        session_id=session.id,
        partner_names=session.composite_names,
    )


@router.get(
    "/sessions/{session_id}",
    response_model=SessionResponse,
    response_model_by_alias=True,
    summary="Get session",
    responses={
        404: {"model": ErrorResponse, "description": "Session not found"},
    },
)
async def get_session(
    session_id: str,
    service: MediationService = Depends(get_mediation_service),
) -> SessionResponse:
    """Get session information."""
    session = await service.get_session(session_id)
    return SessionResponse(
        session_id=session.id,
        partner_names=session.composite_names,
        partners=list(session.partner_names),
        created_at=session.created_at,
    )


@router.get(
    "/sessions/{session_id}/partners",
    response_model=list[PartnerAvailability],
    response_model_by_alias=True,
    summary="Partner availability",
    description="Partners that already started chatting cannot be picked again.",
)
async def get_partners(
    session_id: str,
    service: MediationService = Depends(get_mediation_service),
) -> list[PartnerAvailability]:
    """List both partners and whether each one already started."""
    session = await service.get_session(session_id)
    used = await service.used_partner_names(session_id)
    return [
        PartnerAvailability(name=name, is_used=name in used)
        for name in session.partner_names
    ]


@router.post(
    "/chat",
    response_model=ChatResponse,
    response_model_by_alias=True,
    status_code=status.HTTP_200_OK,
    summary="Take a partner turn",
    responses={
        400: {"model": ErrorResponse, "description": "Missing required fields"},
        404: {"model": ErrorResponse, "description": "Session not found"},
        502: {"model": ErrorResponse, "description": "Reply generation failed"},
    },
)
async def chat(
    request: ChatRequest,
    service: MediationService = Depends(get_mediation_service),
) -> ChatResponse:
    """
    Run one partner turn.

    The user message and the AI reply are stored together once the reply
    exists. A detected summary is stored for the partner and may complete
    the session.
    """
    history = None
    if request.messages is not None:
        history = [
            MessageRecord(
                session_id=request.session_id or "",
                role=item.role,
                text=item.message,
                author=item.name,
            )
            for item in request.messages
        ]

    outcome = await service.take_turn(
        session_id=request.session_id,
        partner_name=request.partner_name,
        message=request.message,
        history=history,
    )

    return ChatResponse(
        message=outcome.reply_text,
        summary=outcome.summary_text,
        finalized=outcome.solution is not None,
    )


@router.get(
    "/sessions/{session_id}/messages",
    response_model=list[MessageResponse],
    response_model_by_alias=True,
    summary="Partner thread",
    responses={
        400: {"model": ErrorResponse, "description": "Unknown partner"},
        404: {"model": ErrorResponse, "description": "Session not found"},
    },
)
async def get_messages(
    session_id: str,
    partner: str = Query(..., description="Partner whose thread to return"),
    service: MediationService = Depends(get_mediation_service),
) -> list[MessageResponse]:
    """Messages visible to one partner, shared solution included."""
    thread = await service.get_thread(session_id, partner)
    return [_message_response(entry) for entry in thread]


@router.get(
    "/sessions/{session_id}/summaries/{partner}",
    response_model=SummaryResponse,
    response_model_by_alias=True,
    summary="Partner summary",
    responses={
        404: {"model": ErrorResponse, "description": "No summary yet"},
    },
)
async def get_summary(
    session_id: str,
    partner: str,
    service: MediationService = Depends(get_mediation_service),
) -> SummaryResponse:
    """Get a partner's perspective summary."""
    summary = await service.get_partner_summary(session_id, partner)
    return _summary_response(summary)


@router.get(
    "/sessions/{session_id}/status",
    response_model=StatusResponse,
    response_model_by_alias=True,
    summary="Completion status",
    description=(
        "Checks whether both partners are done and posts the shared solution "
        "when they are. Pass `wait` to long-poll for completion."
    ),
    responses={
        404: {"model": ErrorResponse, "description": "Session not found"},
    },
)
async def get_status(
    session_id: str,
    partner: Optional[str] = Query(default=None, description="Viewing partner"),
    wait: float = Query(default=0.0, ge=0.0, description="Seconds to wait for completion"),
    service: MediationService = Depends(get_mediation_service),
) -> StatusResponse:
    """Poll (or long-poll) a session for completion."""
    result: SessionStatus = await service.get_status(session_id, wait=wait)

    current = other = None
    if partner and result.session.position_of(partner) is not None:
        current = result.summary_of(partner)
        other = result.summary_of(result.session.other_partner(partner))

    return StatusResponse(
        session_id=result.session.id,
        stages={name: stage.value for name, stage in result.stages.items()},
        both_completed=result.both_done,
        solution=_message_response(result.solution) if result.solution else None,
        current_partner_summary=_summary_response(current),
        other_partner_summary=_summary_response(other),
    )
