"""Gated ebook downloads."""
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse

from app.api.deps import get_current_user_id
from app.billing.entitlements import DEFAULT_EBOOK, EBOOKS, EbookUnavailable, has_purchased, open_ebook
from app.core.config import settings
from app.core.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["downloads"])


@router.get("/download-ebook")
def download_ebook(
    ebook: str = Query(default=DEFAULT_EBOOK),
    test: bool = Query(default=False),
    user_id: str = Depends(get_current_user_id),
):
    config = EBOOKS.get(ebook)
    if config is None:
        raise HTTPException(status_code=400, detail="Invalid ebook specified")

    if test and settings.DEBUG:
        logger.warning("Test mode: skipping purchase verification for %s", user_id)
    elif not has_purchased(user_id, config):
        raise HTTPException(status_code=403, detail="You must purchase this ebook to download it")

    try:
        chunks = open_ebook(config)
    except EbookUnavailable as e:
        raise HTTPException(status_code=500, detail=str(e)) from e

    logger.info("Serving %s to %s", config.slug, user_id)
    return StreamingResponse(
        chunks,
        media_type="application/pdf",
        headers={
            "Content-Disposition": f'attachment; filename="{config.file_name}"',
            "Cache-Control": "private, no-cache, no-store, must-revalidate",
        },
    )
