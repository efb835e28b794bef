"""User profile bootstrap on sign-in."""

import logging

from tasklanes.models.constants import OWNER_FIELD, USERS_COLLECTION
from tasklanes.models.user import CurrentUser
from tasklanes.store.ports import SERVER_TIMESTAMP, DocumentStore

logger = logging.getLogger(__name__)


async def ensure_user_profile(store: DocumentStore, user: CurrentUser) -> bool:
    """Create the user's profile document if it does not exist yet.

    Returns:
        True if a profile was created, False if one already existed
    """
    existing = await store.query(USERS_COLLECTION, {OWNER_FIELD: user.id})
    if existing:
        return False

    await store.insert(
        USERS_COLLECTION,
        {
            OWNER_FIELD: user.id,
            "display_name": user.display_name,
            "email": user.email,
            "photo_url": user.photo_url,
            "created_at": SERVER_TIMESTAMP,
        },
        doc_id=user.id,
    )
    logger.info(f"Created profile for user {user.id}")
    return True
