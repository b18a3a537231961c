from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Response models are emitted in camelCase for the web client"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class NonceRequest(BaseModel):
    """Request model for nonce generation - input validation"""

    address: str = Field(..., description="Wallet address (0x... for EVM, base58 for Solana)")
    network: str = Field(..., description="One of base, base-sepolia, solana, solana-devnet")


class NonceData(CamelModel):
    """Response model for nonce generation - output"""

    nonce: str
    network: str
    domain: str
    uri: str
    statement: str
    issued_at: datetime
    expires_at: datetime


class VerifyRequest(BaseModel):
    """Request model for wallet verification - input validation"""

    message: str = Field(..., description="The exact message the wallet signed")
    signature: str = Field(..., description="Signature (0x hex for EVM, base64/base58 for Solana)")
    nonce: str = Field(..., description="Nonce returned by /auth/nonce")


class SessionData(CamelModel):
    id: str
    wallet_address: str
    author_uuid: str
    network: str
    expires_at: datetime


class VerifyData(CamelModel):
    """Response model for authentication - output"""

    token: str
    session: SessionData


class NonceResponse(BaseModel):
    success: bool = True
    data: NonceData


class VerifyResponse(BaseModel):
    success: bool = True
    data: VerifyData


class SessionResponse(BaseModel):
    success: bool = True
    data: SessionData


class EmptyResponse(BaseModel):
    success: bool = True
    data: dict = Field(default_factory=dict)


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    code: Optional[str] = None
