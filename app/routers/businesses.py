import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.core.auth import get_current_user
from app.db.session import get_db
from app.models.business import Business, LISTING_APPROVED
from app.models.user import User
from app.schemas.business import BusinessCreate, BusinessRead, ListingModeration
from app.schemas.notification import NotificationRead
from app.services.moderation import decide_listing

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/businesses", tags=["businesses"])


@router.post("", response_model=BusinessRead, status_code=201)
def create_business(
    business: BusinessCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Create a listing owned by the current user. New listings start pending moderation."""
    db_business = Business(**business.model_dump(), owner_id=current_user.id)
    db.add(db_business)
    db.commit()
    db.refresh(db_business)
    logger.info("Business created: id=%s owner=%s", db_business.id, current_user.id)
    return db_business


@router.get("", response_model=list[BusinessRead])
def list_businesses(
    name: Optional[str] = Query(None, description="Search by business name"),
    province: Optional[str] = Query(None, min_length=2, max_length=2),
    db: Session = Depends(get_db),
):
    """List approved businesses with optional name and province filters."""
    query = db.query(Business).filter(Business.status == LISTING_APPROVED)
    if name:
        query = query.filter(Business.name.ilike(f"%{name}%"))
    if province:
        query = query.filter(Business.province == province.upper())
    return query.all()


@router.get("/{business_id}", response_model=BusinessRead)
def get_business(business_id: UUID, db: Session = Depends(get_db)):
    business = db.query(Business).filter(Business.id == business_id).first()
    if not business:
        raise HTTPException(status_code=404, detail="Business not found")
    return business


@router.post("/{business_id}/moderation", response_model=NotificationRead)
def moderate_business(
    business_id: UUID,
    body: ListingModeration,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Approve or reject a listing (administrators only).
    Returns the notification sent to the listing owner.
    """
    return decide_listing(db, current_user, business_id, body.approve)
