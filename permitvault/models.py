from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class DepositRequest(BaseModel):
    # quantities are never coerced from bool, float or numeric strings
    model_config = ConfigDict(strict=True)

    amount: int
    account: Optional[str] = None


class WithdrawRequest(BaseModel):
    model_config = ConfigDict(strict=True)

    recipient: str
    amount: int
    nonce: int
    signature_b64: str = Field(..., description="Base64 Ed25519 signature over the permission digest")


class BalanceResponse(BaseModel):
    vault_identity: str
    network_id: int
    balance: str


class WithdrawResponse(BaseModel):
    status: str = "WITHDRAWN"
    digest: str
    recipient: str
    amount: str
    balance: str


class AuthorizationStatus(BaseModel):
    digest: str
    consumed: bool
    record: Optional[Dict[str, str]] = None


class ErrorResponse(BaseModel):
    detail: str = Field(..., description="Error code, e.g. REPLAY_DETECTED")


class EventList(BaseModel):
    events: List[Dict[str, Any]] = Field(default_factory=list)
