"""CRUD operations for user profiles."""

from typing import Optional

from sqlalchemy.orm import Session

from period_utils import utc_now
from .profile import Profile


def get_profile(db: Session, user_id: str) -> Optional[Profile]:
    return db.query(Profile).filter(Profile.user_id == user_id).first()

def get_membership(db: Session, user_id: str) -> Optional[str]:
    """Returns the profile membership tier, or None if the user has no profile."""
    membership = (
        db.query(Profile.membership).filter(Profile.user_id == user_id).scalar()
    )
    return membership or None


def upsert_profile(
    db: Session,
    user_id: str,
    membership: Optional[str] = None,
    stripe_customer_id: Optional[str] = None,
    stripe_subscription_id: Optional[str] = None,
) -> Profile:
    """Create a profile or update the given fields of an existing one."""
    profile = get_profile(db, user_id)
    if profile is None:
        profile = Profile(user_id=user_id, membership=membership or "starter")
        db.add(profile)
    elif membership:
        profile.membership = membership

    if stripe_customer_id is not None:
        profile.stripe_customer_id = stripe_customer_id
    if stripe_subscription_id is not None:
        profile.stripe_subscription_id = stripe_subscription_id
    profile.updated_at = utc_now()

    db.commit()
    db.refresh(profile)
    return profile
