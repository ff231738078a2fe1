"""
Storage access for ads.

This is the only place that knows how soft deletion is represented: every
lookup goes through `visible()`, so a deleted ad cannot leak into a new
query path.
"""
from typing import List, Optional, Tuple

from sqlalchemy.orm import Query, Session

from admod.models.domain import Ad
from admod.models.enums import AdStatus


class AdRepository:
    def __init__(self, db: Session):
        self.db = db

    def visible(self) -> Query:
        """Base query over ads that have not been soft-deleted."""
        return self.db.query(Ad).filter(Ad.deleted_at.is_(None))

    def get(self, ad_id: str, for_update: bool = False) -> Optional[Ad]:
        """
        Fetch a visible ad by id.

        With for_update the row is locked for the rest of the transaction
        (where the backend supports it) and any cached copy is refreshed.
        """
        query = self.visible().filter(Ad.id == ad_id)
        if for_update:
            query = query.with_for_update().populate_existing()
        return query.first()

    def list(
        self,
        status: Optional[AdStatus] = None,
        owner_id: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[Ad], int]:
        query = self.visible()
        if status is not None:
            query = query.filter(Ad.status == status)
        if owner_id is not None:
            query = query.filter(Ad.owner_id == owner_id)

        total = query.count()
        items = (
            query.order_by(Ad.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return items, total

    def list_for_owner(self, owner_id: str) -> List[Ad]:
        return self.visible().filter(Ad.owner_id == owner_id).order_by(Ad.created_at.desc()).all()

    def add(self, ad: Ad) -> Ad:
        self.db.add(ad)
        return ad
