"""
Store connection endpoints.
"""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.api.deps import get_current_user_id, get_platform
from app.db.session import get_db
from app.models.sync_models import StoreConnection
from app.repositories.store_connection_repository import StoreConnectionRepository
from app.services.credentials import credentials_from_connection

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/stores", tags=["Store Connections"])


class StoreConnectionRequest(BaseModel):
    store_url: str = Field(..., description="Store domain or URL")
    store_name: Optional[str] = None
    access_token: Optional[str] = Field(default=None, description="Shopify admin API token")
    consumer_key: Optional[str] = Field(default=None, description="WooCommerce consumer key")
    consumer_secret: Optional[str] = Field(default=None, description="WooCommerce consumer secret")
    weight_unit: Optional[str] = None
    auto_sync_products: bool = False


class StoreConnectionResponse(BaseModel):
    id: int
    user_id: str
    platform: str
    store_name: Optional[str] = None
    store_url: str
    weight_unit: Optional[str] = None
    is_active: bool
    auto_sync_products: bool

    class Config:
        from_attributes = True


@router.put("/{platform}", response_model=StoreConnectionResponse)
async def save_store_connection(
    request: StoreConnectionRequest,
    platform: str = Depends(get_platform),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Create or replace the connection; credentials are validated before saving."""
    fields = request.model_dump(exclude={"store_url"})
    credentials_from_connection(StoreConnection(
        user_id=user_id, platform=platform, store_url=request.store_url, is_active=True, **fields
    ))
    connection = StoreConnectionRepository(db).save(
        user_id, platform, request.store_url, is_active=True, **fields
    )
    logger.info(f"Saved {platform} store connection for user {user_id}")
    return connection


@router.get("/{platform}", response_model=StoreConnectionResponse)
async def get_store_connection(
    platform: str = Depends(get_platform),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    connection = StoreConnectionRepository(db).get(user_id, platform)
    if connection is None:
        raise HTTPException(status_code=404, detail="Store connection not found")
    return connection


@router.delete("/{platform}", response_model=StoreConnectionResponse)
async def deactivate_store_connection(
    platform: str = Depends(get_platform),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Deactivate the connection; a running sync aborts at its next page."""
    connection = StoreConnectionRepository(db).deactivate(user_id, platform)
    if connection is None:
        raise HTTPException(status_code=404, detail="Store connection not found")
    return connection
