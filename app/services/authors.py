import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.networks import ChainFamily, Network
from app.models.authors import Author

logger = logging.getLogger(__name__)

_WALLET_NAMESPACE = uuid.uuid5(uuid.NAMESPACE_URL, "readia:wallet")


def derived_author_uuid(wallet_address: str, network: Network) -> str:
    """Stable uuid for a wallet when no author table is available."""
    key = wallet_address.lower() if network.family is ChainFamily.EVM else wallet_address
    return str(uuid.uuid5(_WALLET_NAMESPACE, key))


def _find_author(db: Session, wallet_address: str) -> Author | None:
    return db.query(Author).filter(Author.wallet_address == wallet_address).first()


def get_or_create_author(db: Session, wallet_address: str, network: Network) -> str:
    """
    Get author uuid for a verified wallet address.
    Creates a new author if one doesn't exist.
    Updates last_login_at timestamp.
    Returns the uuid as a string.
    """
    author = _find_author(db, wallet_address)

    now = datetime.now(timezone.utc)
    if author:
        author.last_login_at = now  # type: ignore
        db.commit()
        return str(author.uuid)

    author = Author(wallet_address=wallet_address, network=network.value, last_login_at=now)
    db.add(author)
    try:
        db.commit()
        logger.info("created author %s for %s", author.uuid, wallet_address)
    except IntegrityError:
        # a concurrent first sign-in for the same wallet inserted it first
        db.rollback()
        author = _find_author(db, wallet_address)
        if author is None:
            raise
        author.last_login_at = now  # type: ignore
        db.commit()

    return str(author.uuid)


class AuthorDirectory:
    """Binds get_or_create_author to a request's database session."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def __call__(self, wallet_address: str, network: Network) -> str:
        return get_or_create_author(self.db, wallet_address, network)
