import logging
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.auth import get_current_user
from app.db.session import get_db
from app.models.connection_request import STATUS_PENDING
from app.models.user import User
from app.schemas.connection_request import (
    ConnectionRequestCreate,
    ConnectionRequestCreated,
    ConnectionRequestRead,
    DecisionRequest,
    DecisionResult,
)
from app.services import connection_requests

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/connection-requests", tags=["connection-requests"])


@router.post("", response_model=ConnectionRequestCreated, status_code=201)
def create_connection_request(
    body: ConnectionRequestCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Ask a business owner for a private conversation.
    Returns 400 self_connection when the current user owns the business.
    A repeat request while one is pending returns the existing request.
    """
    request_id = connection_requests.request_connection(db, current_user, body.business_id, body.message)
    return ConnectionRequestCreated(id=request_id, status=STATUS_PENDING)


@router.get("/received", response_model=list[ConnectionRequestRead])
def list_received(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return connection_requests.list_received(db, current_user)


@router.get("/sent", response_model=list[ConnectionRequestRead])
def list_sent(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return connection_requests.list_sent(db, current_user)


@router.post("/{request_id}/decision", response_model=DecisionResult)
def decide(
    request_id: UUID,
    body: DecisionRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Accept or reject a pending request (business owner only).

    On accept the chat room is provisioned and the requester notified; on reject
    the requester is notified and the request removed. 409 if already decided.
    A 502 after the decision committed carries request_id and status; call
    POST /{request_id}/complete to finish the remaining steps.
    """
    outcome = connection_requests.decide(db, current_user, request_id, body.decision)
    return DecisionResult(**vars(outcome))


@router.post("/{request_id}/complete", response_model=DecisionResult)
def complete(
    request_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Finish provisioning/notification for an already-decided request. Safe to repeat."""
    outcome = connection_requests.complete_decision(db, current_user, request_id)
    return DecisionResult(**vars(outcome))
