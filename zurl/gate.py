import hmac
import logging

from zurl import schemas
from zurl.errors import NotFoundError
from zurl.store import LINKS, DocumentStore

logger = logging.getLogger("zurl.gate")


def secrets_match(supplied: str, stored: str | None) -> bool:
    if stored is None:
        return False
    # Exact, case-sensitive match; surrogatepass keeps lone surrogates comparable
    return hmac.compare_digest(supplied.encode("utf-8", "surrogatepass"), stored.encode("utf-8", "surrogatepass"))


class LinkAccessGate:
    """Decides whether a short link's destination may be revealed."""

    def __init__(self, store: DocumentStore):
        self.store = store

    def resolve(self, short_link_id: str) -> schemas.ShortLinkRecord:
        record = self.store.get(LINKS, short_link_id)
        if record is None:
            raise NotFoundError(f"Short link {short_link_id!r} not found")
        return record

    def reveal(self, record: schemas.ShortLinkRecord, supplied_secret: str | None = None) -> schemas.RevealResult:
        """Return ``redirect``, ``locked`` or ``denied`` for this snapshot of the link.

        Only ``is_protected`` gates access; a stale ``unlock_secret`` on an
        unprotected link is ignored. An empty string is a supplied secret,
        not a missing one. Nothing is written: click recording is up to the
        caller once it acts on a redirect.
        """
        if not record.is_protected:
            return schemas.RevealResult(status="redirect", target=record.original_url)
        if supplied_secret is None:
            return schemas.RevealResult(status="locked")
        if secrets_match(supplied_secret, record.unlock_secret):
            return schemas.RevealResult(status="redirect", target=record.original_url)
        logger.info("Wrong unlock secret for %s", record.id)
        return schemas.RevealResult(status="denied")
