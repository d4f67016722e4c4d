from __future__ import annotations
from typing import Literal, Optional, Union
from pydantic import BaseModel


class Identity(BaseModel):
    user_id: str
    email: Optional[str] = None
    display_name: Optional[str] = None

    model_config = {"frozen": True}


class Credentials(BaseModel):
    email: str
    password: str


# --- Guard decisions ---
class Allow(BaseModel):
    kind: Literal["allow"] = "allow"
    view: str

    model_config = {"frozen": True}


class Deny(BaseModel):
    kind: Literal["deny"] = "deny"
    redirect_to: str
    requested_view: Optional[str] = None   # kept so the caller can come back after sign-in

    model_config = {"frozen": True}


AuthDecision = Union[Allow, Deny]
