from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    code: str
    message: str
    details: list[dict] = Field(default_factory=list)


class StatusResponse(BaseModel):
    status: str
    id: str | None = None
