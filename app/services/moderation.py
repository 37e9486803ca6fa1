"""Admin listing moderation and the owner notification it triggers."""

import logging
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import NotFoundError, PermissionDeniedError, TransientStoreError
from app.db.retry import with_retry
from app.models.business import Business, LISTING_APPROVED, LISTING_REJECTED
from app.models.notification import Notification
from app.models.user import User
from app.schemas.notification import ListingApprovedData, ListingRejectedData
from app.services import notifications

logger = logging.getLogger(__name__)


def decide_listing(db: Session, admin: User, business_id: UUID, approve: bool) -> Notification:
    """
    Approve or reject a business listing and notify its owner (in-app and by email).

    The status change and the notification are committed together; the email is
    best effort and never undoes them.
    """
    if not admin.is_admin:
        raise PermissionDeniedError("Only administrators can moderate listings")

    business = with_retry(
        lambda: db.query(Business).filter(Business.id == business_id).first(),
        operation="business lookup",
        on_retry=db.rollback,
    )
    if business is None:
        raise NotFoundError("Business not found")

    if approve:
        business.status = LISTING_APPROVED
        payload = ListingApprovedData(business_id=business.id, business_name=business.name)
        title = "Listing Approved"
        message = f"Your listing {business.name} has been approved and is now visible."
    else:
        business.status = LISTING_REJECTED
        payload = ListingRejectedData(business_id=business.id, business_name=business.name)
        title = "Listing Rejected"
        message = f"Your listing {business.name} was not approved. Please review it and resubmit."

    owner_id = business.owner_id
    notification = notifications.emit(
        db,
        recipient_id=owner_id,
        payload=payload,
        title=title,
        message=message,
        commit=False,
    )
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Listing moderation failed: business=%s error=%s", business_id, e)
        raise TransientStoreError("Could not record the moderation decision") from e

    logger.info("Listing %s by admin=%s: business=%s", payload.type, admin.id, business_id)
    notifications.email_notification(db, notification, db.get(User, owner_id))
    return notification
