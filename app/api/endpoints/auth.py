from typing import List, Optional

from fastapi import Depends, Header, status
from sqlalchemy.orm import Session as DbSession

import app.schemas.auth as schemas
from app.core.dependencies import extract_bearer_token, get_authenticator, get_current_session, get_issuer
from app.core.router_decorated import APIRouter
from app.db.session import get_db
from app.services.authenticator import SessionAuthenticator
from app.services.authors import AuthorDirectory
from app.services.challenge_issuer import ChallengeIssuer
from app.services.session_store import Session

router = APIRouter()
group_tags: List[str] = ["Auth"]

# Failures are raised as AuthError subclasses and rendered by the handlers in main.py


def _session_data(session: Session) -> schemas.SessionData:
    return schemas.SessionData(
        id=session.id,
        wallet_address=session.wallet_address,
        author_uuid=session.author_uuid,
        network=session.network.value,
        expires_at=session.expires_at,
    )


@router.post(
    "/nonce",
    tags=group_tags,
    response_model=schemas.NonceResponse,
    status_code=status.HTTP_200_OK,
    responses={400: {"model": schemas.ErrorResponse}, 429: {"model": schemas.ErrorResponse}},
)
def request_nonce(
    body: schemas.NonceRequest,
    issuer: ChallengeIssuer = Depends(get_issuer),
) -> schemas.NonceResponse:
    """Generate and store a single-use sign-in challenge for a wallet address."""
    issued = issuer.issue_nonce(body.address, body.network)
    return schemas.NonceResponse(
        data=schemas.NonceData(
            nonce=issued.nonce,
            network=issued.network.value,
            domain=issued.domain,
            uri=issued.uri,
            statement=issued.statement,
            issued_at=issued.issued_at,
            expires_at=issued.expires_at,
        )
    )


@router.post(
    "/verify",
    tags=group_tags,
    response_model=schemas.VerifyResponse,
    responses={400: {"model": schemas.ErrorResponse}},
)
def verify_wallet(
    body: schemas.VerifyRequest,
    authenticator: SessionAuthenticator = Depends(get_authenticator),
    db: DbSession = Depends(get_db),
) -> schemas.VerifyResponse:
    """Verify a signed challenge and return a bearer token with its session."""
    token, session = authenticator.verify(
        body.message,
        body.signature,
        body.nonce,
        resolve_author=AuthorDirectory(db),
    )
    return schemas.VerifyResponse(
        data=schemas.VerifyData(token=token, session=_session_data(session))
    )


@router.post(
    "/logout",
    tags=group_tags,
    response_model=schemas.EmptyResponse,
)
def logout(
    authorization: Optional[str] = Header(None, alias="Authorization"),
    authenticator: SessionAuthenticator = Depends(get_authenticator),
) -> schemas.EmptyResponse:
    """Invalidate the session behind the bearer token. Always succeeds."""
    authenticator.invalidate(extract_bearer_token(authorization))
    return schemas.EmptyResponse()


@router.get(
    "/session",
    tags=group_tags,
    response_model=schemas.SessionResponse,
    responses={401: {"model": schemas.ErrorResponse}},
)
def current_session(session: Session = Depends(get_current_session)) -> schemas.SessionResponse:
    """Return the session named by the bearer token."""
    return schemas.SessionResponse(data=_session_data(session))
