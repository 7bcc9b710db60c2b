"""Authenticated user identity as issued by the auth provider."""

from typing import Optional

from pydantic import BaseModel, ConfigDict


class Identity(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: str
    email: Optional[str] = None
    token: Optional[str] = None
