from uuid import UUID

from pydantic import BaseModel


class CurrentUser(BaseModel):
    """Authenticated caller as resolved from the bearer token."""

    id: UUID
    role: str
    full_name: str = ""
