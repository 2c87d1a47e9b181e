"""Shared API dependencies."""
from fastapi import Header, HTTPException, Path

from app.constants.sync import Platform


def get_current_user_id(x_user_id: str = Header(..., alias="X-User-Id")) -> str:
    """Account the request acts for; authentication happens upstream."""
    user_id = x_user_id.strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="X-User-Id header is required")
    return user_id


def get_platform(platform: str = Path(..., description="shopify or woocommerce")) -> str:
    platform = platform.lower()
    if platform not in Platform.ALL:
        raise HTTPException(status_code=404, detail=f"Unsupported platform: {platform}")
    return platform
