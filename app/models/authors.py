import uuid

from sqlalchemy import Column, DateTime, String
from sqlalchemy.sql import func

from app.db.base import Base


def _new_uuid() -> str:
    return str(uuid.uuid4())


class Author(Base):
    """Stable identity behind a wallet, joined against article ownership
    Example:
    {
        "uuid": "550e8400-e29b-41d4-a716-446655440000",
        "wallet_address": "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed",
        "network": "base-sepolia",
        "created_at": "2026-01-01T12:00:00",
        "last_login_at": "2026-01-01T12:00:00"
    }
    """

    __tablename__ = "authors"

    uuid = Column(String(36), primary_key=True, default=_new_uuid)
    wallet_address = Column(String(64), nullable=False, unique=True, index=True)
    network = Column(String(32), nullable=False)
    created_at = Column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    last_login_at = Column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
