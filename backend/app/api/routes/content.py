"""Public plan listing from Strapi."""
from fastapi import APIRouter, HTTPException

from app.integrations import strapi_api
from app.integrations.strapi_api import CMSError

router = APIRouter(prefix="/api", tags=["content"])


@router.get("/subscriptions-list")
def subscriptions_list():
    try:
        plans = strapi_api.list_active_plans()
    except CMSError as e:
        raise HTTPException(status_code=500, detail="Failed to fetch subscriptions") from e
    return {"subscriptions": plans}
