from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from email_to_ics.core.models import EventRecord, ProcessOptions


class ProcessRequest(BaseModel):
    content: str = Field(min_length=1)
    url: Optional[str] = None
    instructions: Optional[str] = None
    screenshot: Optional[str] = None
    tentative: bool = True
    multiday: bool = False
    review_mode: Literal["direct", "review"] = "direct"
    ai_model: Optional[str] = None

    def to_options(self) -> ProcessOptions:
        return ProcessOptions(**self.model_dump(exclude={"content"}))


class ConfirmRequest(BaseModel):
    confirmation_token: str = Field(min_length=1)


class ConfirmResponse(BaseModel):
    ok: bool = True
    message: str = "Calendar invite sent successfully!"
    message_id: Optional[str] = None
    recipient: str
    subject: str
    driver: Literal["console", "postmark"]
    event_count: int


class DiscardResponse(BaseModel):
    ok: bool = True
    discarded: bool


class GenerateIcsRequest(BaseModel):
    events: List[EventRecord] = Field(min_length=1)
    tentative: bool = True


class CleanupResponse(BaseModel):
    ok: bool = True
    removed: int
    stats: dict
