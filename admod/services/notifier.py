"""
Best-effort delivery of moderation notices to ad owners.

Delivery happens after the moderation change is committed and in its own
session, so a failure here can never roll back or block the change itself.
"""
import logging
from typing import Callable, Optional, Protocol

from sqlalchemy.orm import Session

from admod.models.domain import Ad, OwnerMessage

logger = logging.getLogger(__name__)


class OwnerNotifier(Protocol):
    def notify_owner(self, ad_id: str, text: str, sender_id: str) -> Optional[OwnerMessage]:
        ...


class MessageNotifier:
    """Writes the notice into the owner's message inbox."""

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def notify_owner(self, ad_id: str, text: str, sender_id: str) -> OwnerMessage:
        db = self.session_factory()
        try:
            ad = db.query(Ad).filter(Ad.id == ad_id).first()
            if ad is None:
                raise LookupError(f"Ad {ad_id} not found")

            message = OwnerMessage(ad_id=ad_id, sender_id=sender_id, recipient_id=ad.owner_id, text=text)
            db.add(message)
            db.commit()
            db.refresh(message)
            logger.info("notified owner %s about ad %s", ad.owner_id, ad_id)
            return message
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()


def rejection_notice(title: str, reason: str) -> str:
    return (
        f'Your ad "{title}" has been rejected.\n\n'
        f"Reason: {reason}\n\n"
        "Please review and resubmit if needed."
    )
