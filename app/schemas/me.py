from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    first_name: str | None
    last_name: str | None
    phone: str | None
    whatsapp_available: bool
    avatar_url: str | None
    created_at: datetime


class ProfileUpdate(BaseModel):
    first_name: str | None = Field(default=None, max_length=100)
    last_name: str | None = Field(default=None, max_length=100)
    phone: str | None = Field(default=None, max_length=30)
    whatsapp_available: bool | None = None
    # object storage URL issued by the upload service
    avatar_url: str | None = Field(default=None, max_length=2000)
