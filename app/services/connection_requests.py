"""Connection request lifecycle: request, decide, and resumable post-decision side effects.

State machine: pending -> accepted (row kept as audit record) or
pending -> rejected (row deleted once the requester has been notified).

A decision is three separate store writes: the status transition, room
provisioning (accept only) and the decision notification. The transition is a
conditional UPDATE on status='pending', so concurrent decisions on one request
have exactly one winner. Failures after the transition has committed are
reported as ProvisioningFailedError / DeliveryError carrying the committed
status; complete_decision() resumes the remaining side effects without
re-deciding, and emits the decision notification at most once
(decision_notified_at is committed together with it).
"""

import logging
from dataclasses import dataclass
from typing import Literal, Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import (
    DeliveryError,
    InvalidStateError,
    NotFoundError,
    ProvisioningFailedError,
    SelfConnectionError,
    TransientStoreError,
)
from app.db.retry import with_retry
from app.models.business import Business
from app.models.connection_request import (
    ConnectionRequest,
    STATUS_ACCEPTED,
    STATUS_PENDING,
    STATUS_REJECTED,
)
from app.models.timestamps import utcnow
from app.models.user import User
from app.realtime.bus import UPDATE, RowChange
from app.realtime.store_events import row_snapshot, stage_change
from app.schemas.notification import ConnectionAcceptedData, ConnectionDeclinedData
from app.services import notifications
from app.services.room_provisioner import provision_room

logger = logging.getLogger(__name__)

Decision = Literal["accept", "reject"]
_DECISION_STATUS = {"accept": STATUS_ACCEPTED, "reject": STATUS_REJECTED}


@dataclass
class DecisionOutcome:
    request_id: UUID
    status: str
    room_id: Optional[UUID] = None
    notification_id: Optional[UUID] = None


def _find_pending(db: Session, business_id: UUID, requester_id: UUID) -> ConnectionRequest | None:
    return (
        db.query(ConnectionRequest)
        .filter(
            ConnectionRequest.business_id == business_id,
            ConnectionRequest.requester_id == requester_id,
            ConnectionRequest.status == STATUS_PENDING,
        )
        .first()
    )


def request_connection(db: Session, principal: User, business_id: UUID, message: str | None = None) -> UUID:
    """
    Ask the owner of business_id for a private conversation.

    Raises:
        NotFoundError: business does not exist.
        SelfConnectionError: principal owns the business (nothing is written).

    Returns:
        Id of the pending request. A repeat request while one is still pending
        returns the existing request id. No notification is sent; the owner sees
        it in their received requests.
    """
    business = with_retry(
        lambda: db.query(Business).filter(Business.id == business_id).first(),
        operation="business lookup",
        on_retry=db.rollback,
    )
    if business is None:
        raise NotFoundError("Business not found")
    if business.owner_id == principal.id:
        logger.info("Rejected self-connection: user=%s business=%s", principal.id, business_id)
        raise SelfConnectionError("You cannot request a connection to your own business")

    existing = _find_pending(db, business_id, principal.id)
    if existing is not None:
        logger.info("Connection request already pending: request=%s", existing.id)
        return existing.id

    request = ConnectionRequest(
        business_id=business.id,
        requester_id=principal.id,
        business_owner_id=business.owner_id,
        message=(message or "").strip() or None,
        status=STATUS_PENDING,
    )
    try:
        db.add(request)
        db.commit()
    except IntegrityError as e:
        db.rollback()
        # Lost the race against a concurrent request from the same requester
        existing = _find_pending(db, business_id, principal.id)
        if existing is None:
            logger.error("Connection request insert failed: user=%s business=%s error=%s", principal.id, business_id, e)
            raise TransientStoreError("Could not create connection request") from e
        logger.info("Connection request created concurrently; reusing request=%s", existing.id)
        return existing.id
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Connection request insert failed: user=%s business=%s error=%s", principal.id, business_id, e)
        raise TransientStoreError("Could not create connection request") from e

    logger.info("Connection request created: request=%s business=%s requester=%s", request.id, business_id, principal.id)
    return request.id


def _load_for_owner(db: Session, principal: User, request_id: UUID) -> ConnectionRequest:
    request = with_retry(
        lambda: db.query(ConnectionRequest).filter(ConnectionRequest.id == request_id).first(),
        operation="connection request lookup",
        on_retry=db.rollback,
    )
    # Requests outside the caller's scope are indistinguishable from missing ones
    if request is None or request.business_owner_id != principal.id:
        raise NotFoundError("Connection request not found")
    return request


def _transition(db: Session, request: ConnectionRequest, new_status: str) -> None:
    """Conditionally move pending -> new_status; exactly one concurrent caller wins."""
    decided_at = utcnow()
    snapshot = row_snapshot(request)
    try:
        updated = (
            db.query(ConnectionRequest)
            .filter(ConnectionRequest.id == request.id, ConnectionRequest.status == STATUS_PENDING)
            .update({"status": new_status, "decided_at": decided_at}, synchronize_session=False)
        )
        if updated != 1:
            db.rollback()
            raise InvalidStateError("Connection request has already been decided")
        stage_change(
            db,
            RowChange("connection_requests", UPDATE, {**snapshot, "status": new_status, "decided_at": decided_at}),
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Status transition failed: request=%s status=%s error=%s", request.id, new_status, e)
        raise TransientStoreError("Could not record the decision") from e
    db.refresh(request)
    logger.info("Connection request %s: request=%s business=%s", new_status, request.id, request.business_id)


def _provision(db: Session, request: ConnectionRequest) -> UUID:
    business_id, owner_id, member_id, request_id = (
        request.business_id,
        request.business_owner_id,
        request.requester_id,
        request.id,
    )
    try:
        return with_retry(
            lambda: provision_room(db, business_id, owner_id, member_id, request_id),
            operation="room provisioning",
            attempts=settings.provisioning_retry_attempts,
            on_retry=db.rollback,
        )
    except (TransientStoreError, SQLAlchemyError) as e:
        db.rollback()
        logger.error("Room provisioning failed after retries: request=%s error=%s", request_id, e)
        raise ProvisioningFailedError(
            "Connection accepted, but the conversation could not be created yet. Please retry.",
            request_id=request_id,
            status=STATUS_ACCEPTED,
        ) from e


def _notify_decision(db: Session, request: ConnectionRequest, room_id: UUID | None) -> UUID | None:
    """Emit the decision notification once, committed together with decision_notified_at."""
    if request.decision_notified_at is not None:
        return None

    business_name = request.business.name
    if request.status == STATUS_ACCEPTED:
        payload = ConnectionAcceptedData(
            business_id=request.business_id,
            business_name=business_name,
            request_id=request.id,
            room_id=room_id,
        )
        title = "Connection Accepted"
        message = f"Your connection with {business_name} is ready! You can now start a conversation."
    else:
        payload = ConnectionDeclinedData(
            business_id=request.business_id,
            business_name=business_name,
            request_id=request.id,
        )
        title = "Request Declined"
        message = f"Your request to {business_name} was declined."

    request_id, status, requester_id = request.id, request.status, request.requester_id
    try:
        notification = notifications.emit(
            db,
            recipient_id=requester_id,
            payload=payload,
            title=title,
            message=message,
            commit=False,
        )
        request.decision_notified_at = utcnow()
        db.commit()
    except DeliveryError as e:
        raise DeliveryError(
            "Decision recorded, but the requester could not be notified. Please retry.",
            request_id=request_id,
            status=status,
        ) from e
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Decision notification commit failed: request=%s error=%s", request_id, e)
        raise DeliveryError(
            "Decision recorded, but the requester could not be notified. Please retry.",
            request_id=request_id,
            status=status,
        ) from e

    notifications.email_notification(db, notification, db.get(User, requester_id))
    return notification.id


def _complete(db: Session, request: ConnectionRequest) -> DecisionOutcome:
    outcome = DecisionOutcome(request_id=request.id, status=request.status)

    if request.status == STATUS_ACCEPTED:
        outcome.room_id = _provision(db, request)
        outcome.notification_id = _notify_decision(db, request, outcome.room_id)
        return outcome

    outcome.notification_id = _notify_decision(db, request, None)
    # The requester has been told; the row's audit value is spent
    try:
        db.refresh(request)
        db.delete(request)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Rejected request cleanup failed: request=%s error=%s", outcome.request_id, e)
        raise TransientStoreError("Request declined and requester notified, but cleanup failed. Please retry.") from e
    logger.info("Rejected connection request removed: request=%s", outcome.request_id)
    return outcome


def decide(db: Session, principal: User, request_id: UUID, decision: Decision) -> DecisionOutcome:
    """
    Accept or reject a pending request. Only the business owner may decide.

    Raises:
        NotFoundError: request missing or not owned by principal's business.
        InvalidStateError: request is not pending (including losing a concurrent decision).
        TransientStoreError: the transition itself could not be written (nothing changed).
        ProvisioningFailedError: accepted, but the room could not be created.
        DeliveryError: decided, but the decision notification could not be stored.
    """
    if decision not in _DECISION_STATUS:
        raise ValueError(f"Unknown decision: {decision!r}")

    request = _load_for_owner(db, principal, request_id)
    if request.status != STATUS_PENDING:
        raise InvalidStateError(f"Connection request is already {request.status}")

    _transition(db, request, _DECISION_STATUS[decision])
    return _complete(db, request)


def complete_decision(db: Session, principal: User, request_id: UUID) -> DecisionOutcome:
    """
    Re-run the side effects of an already-made decision (provisioning, notification,
    cleanup). Safe to repeat; never changes the decision itself.
    """
    request = _load_for_owner(db, principal, request_id)
    if request.status == STATUS_PENDING:
        raise InvalidStateError("Connection request has not been decided yet")
    logger.info("Resuming decision side effects: request=%s status=%s", request.id, request.status)
    return _complete(db, request)


def list_received(db: Session, principal: User) -> list[ConnectionRequest]:
    """Requests addressed to businesses the principal owns, newest first."""
    return with_retry(
        lambda: db.query(ConnectionRequest)
        .filter(ConnectionRequest.business_owner_id == principal.id)
        .order_by(ConnectionRequest.created_at.desc())
        .all(),
        operation="received requests fetch",
        on_retry=db.rollback,
    )


def list_sent(db: Session, principal: User) -> list[ConnectionRequest]:
    """Requests the principal has made, newest first."""
    return with_retry(
        lambda: db.query(ConnectionRequest)
        .filter(ConnectionRequest.requester_id == principal.id)
        .order_by(ConnectionRequest.created_at.desc())
        .all(),
        operation="sent requests fetch",
        on_retry=db.rollback,
    )
