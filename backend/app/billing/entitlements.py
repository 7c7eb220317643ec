"""Purchase checks for gated digital downloads."""
from dataclasses import dataclass
from pathlib import Path
from typing import Any, BinaryIO, Iterator

import requests
import stripe

from app.core.config import settings
from app.core.logging import get_logger
from app.core.roles import normalize_email
from app.integrations import clerk_api, stripe_api
from app.integrations.clerk_api import IdentityProviderError

logger = get_logger(__name__)

DEFAULT_EBOOK = "the-ultimate-tip-guide"
CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class Ebook:
    slug: str
    product_id: str
    file_name: str
    search_terms: tuple[str, ...]


EBOOKS = {
    "the-ultimate-tip-guide": Ebook(
        slug="the-ultimate-tip-guide",
        product_id="prod_SP1bz7J9np1Elf",
        file_name="the-ultimate-tip-guide.pdf",
        search_terms=("the ultimate tip guide", "ultimate tip guide"),
    ),
    "the-caddy-book-set": Ebook(
        slug="the-caddy-book-set",
        product_id="prod_SGCInU8ZdnTmuW",
        file_name="the-caddy-book-set.pdf",
        search_terms=("the caddy & book set", "the caddy book set", "caddy book set", "caddy book", "caddy"),
    ),
}


class EbookUnavailable(Exception):
    pass


def paid_sessions(customer_id: str | None, email: str | None) -> list[Any]:
    """Paid payment-mode checkout sessions by customer id, else by email match."""
    if customer_id:
        sessions = stripe_api.list_checkout_sessions(customer_id=customer_id)
    elif email:
        wanted = normalize_email(email)
        sessions = [
            s for s in stripe_api.list_checkout_sessions()
            if normalize_email(s.get("customer_email") or (s.get("customer_details") or {}).get("email")) == wanted
        ]
    else:
        return []
    return [s for s in sessions if s.get("mode") == "payment" and s.get("payment_status") == "paid"]


def line_item_matches(item: Any, ebook: Ebook) -> bool:
    price = item.get("price") or {}
    product = price.get("product")
    if product is not None and not isinstance(product, str):
        if product.get("id") == ebook.product_id:
            return True
        name = (product.get("name") or "").lower()
        if any(term in name for term in ebook.search_terms):
            return True
        if stripe_api.metadata_of(product).get("slug") == ebook.slug:
            return True
    elif product == ebook.product_id:
        return True

    description = (item.get("description") or "").lower()
    return any(term in description for term in ebook.search_terms)


def has_purchased(clerk_user_id: str, ebook: Ebook) -> bool:
    """Whether the user paid for the ebook. Upstream failures count as not entitled."""
    try:
        user = clerk_api.get_user(clerk_user_id)
        customer_id = clerk_api.private_metadata(user).get("stripeCustomerId")
        for session in paid_sessions(customer_id, clerk_api.primary_email(user)):
            for item in stripe_api.list_line_items(session["id"]):
                if line_item_matches(item, ebook):
                    logger.info("User %s purchased %s in session %s", clerk_user_id, ebook.slug, session["id"])
                    return True
    except (IdentityProviderError, stripe.StripeError) as e:
        logger.error("Purchase verification failed for %s (%s): %s", clerk_user_id, ebook.slug, e)
        return False
    return False


def _remote_chunks(resp: requests.Response) -> Iterator[bytes]:
    try:
        yield from resp.iter_content(chunk_size=CHUNK_SIZE)
    finally:
        resp.close()


def _file_chunks(handle: BinaryIO) -> Iterator[bytes]:
    with handle:
        yield from iter(lambda: handle.read(CHUNK_SIZE), b"")


def open_ebook(ebook: Ebook) -> Iterator[bytes]:
    """
    PDF chunks from the configured URL, falling back to the local copy.

    The source is opened before this returns, so EbookUnavailable is raised
    here rather than after the response has started.
    """
    if settings.EBOOK_PDF_URL:
        resp = None
        try:
            resp = requests.get(settings.EBOOK_PDF_URL, timeout=settings.HTTP_TIMEOUT_SECONDS, stream=True)
            resp.raise_for_status()
            return _remote_chunks(resp)
        except requests.RequestException as e:
            if resp is not None:
                resp.close()
            logger.warning("Fetching %s failed (%s), using local fallback", ebook.slug, e)

    path = Path(settings.EBOOK_FALLBACK_PATH)
    try:
        handle = path.open("rb")
    except OSError as e:
        logger.error("Ebook fallback file %s unavailable: %s", path, e)
        raise EbookUnavailable("Ebook file not available") from e
    return _file_chunks(handle)
