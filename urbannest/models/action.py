"""Outcome of a user-initiated action, as handed to the UI."""

from typing import Any, Optional
from pydantic import BaseModel, Field


class ActionResult(BaseModel):
    """What the UI should do after an action: show a message, redirect, or prompt login."""
    ok: bool = Field(..., description="Whether the action succeeded")
    message: Optional[str] = Field(None, description="User-facing text, if any")
    redirect_to: Optional[str] = Field(None, description="Route to navigate to")
    login_required: bool = Field(default=False, description="Caller should open the sign-in prompt")
    value: Any = Field(None, description="Action-specific payload")

    @classmethod
    def success(cls, message: Optional[str] = None, **kwargs: Any) -> "ActionResult":
        return cls(ok=True, message=message, **kwargs)

    @classmethod
    def failure(cls, message: Optional[str] = None, **kwargs: Any) -> "ActionResult":
        return cls(ok=False, message=message, **kwargs)
