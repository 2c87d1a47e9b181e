"""
Store connection repository.

Handles store credential records used to start syncs.
"""
from typing import List, Optional
from sqlalchemy.orm import Session

from app.models.sync_models import StoreConnection


class StoreConnectionRepository:
    """Repository for StoreConnection rows."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, user_id: str, platform: str) -> Optional[StoreConnection]:
        return self.db.query(StoreConnection).filter(
            StoreConnection.user_id == user_id,
            StoreConnection.platform == platform
        ).first()

    def is_active(self, user_id: str, platform: str) -> bool:
        """Re-read the connection so deactivations made elsewhere are seen."""
        connection = self.get(user_id, platform)
        if connection is None:
            return False
        self.db.refresh(connection)
        return bool(connection.is_active)

    def save(self, user_id: str, platform: str, store_url: str, **kwargs) -> StoreConnection:
        """
        Create or update the connection of (user, platform).

        Args:
            user_id: Owning account
            platform: Source platform
            store_url: Store domain or URL
            **kwargs: access_token, consumer_key, consumer_secret, weight_unit,
                is_active, auto_sync_products, store_name

        Returns:
            Stored StoreConnection
        """
        connection = self.get(user_id, platform)
        if connection is None:
            connection = StoreConnection(user_id=user_id, platform=platform, store_url=store_url)
            self.db.add(connection)
        connection.store_url = store_url
        for key, value in kwargs.items():
            if hasattr(connection, key):
                setattr(connection, key, value)
        self.db.commit()
        self.db.refresh(connection)
        return connection

    def deactivate(self, user_id: str, platform: str) -> Optional[StoreConnection]:
        connection = self.get(user_id, platform)
        if connection:
            connection.is_active = False
            self.db.commit()
        return connection

    def get_auto_sync_connections(self) -> List[StoreConnection]:
        return self.db.query(StoreConnection).filter(
            StoreConnection.is_active == True,
            StoreConnection.auto_sync_products == True
        ).all()
