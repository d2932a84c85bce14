from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class AuthUser(BaseModel):
    """
    Represents an authenticated actor decoded from the upstream access token.
    """

    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(..., alias="sub")
    email: Optional[EmailStr] = None
    username: Optional[str] = None
    role: str = "authenticated"
    is_admin: bool = False

    @property
    def has_admin_rights(self) -> bool:
        return self.is_admin or self.role in ("admin", "service_role")
