from datetime import date, time
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, model_validator


class EventRecord(BaseModel):
    summary: str
    location: str = ""
    start_date: date
    start_time: Optional[time] = None  # None means all-day
    end_date: Optional[date] = None
    end_time: Optional[time] = None
    description: str = ""
    timezone: str = "America/Los_Angeles"
    url: str = ""

    @model_validator(mode="after")
    def _all_day_has_no_end_time(self) -> "EventRecord":
        if self.start_time is None and self.end_time is not None:
            self.end_time = None
        return self

    @property
    def is_all_day(self) -> bool:
        return self.start_time is None


class ProcessOptions(BaseModel):
    url: Optional[str] = None
    instructions: Optional[str] = None
    screenshot: Optional[str] = None  # base64 JPEG, optionally as a data URL
    tentative: bool = True
    multiday: bool = False
    review_mode: Literal["direct", "review"] = "direct"
    ai_model: Optional[str] = None


class ConfirmationEntry(BaseModel):
    ics_content: str
    recipient: str
    subject: str
    events: List[EventRecord]
    created_at: float
    expires_at: Optional[float] = None  # None never expires


class DispatchResult(BaseModel):
    message_id: Optional[str] = None
    recipient: str
    subject: str
    driver: str
    ics_content: str
    event_count: int = 1


class DirectResult(BaseModel):
    ok: bool = True
    needs_review: bool = False
    message: str = "Calendar invite sent successfully!"
    ics_content: str
    subject: str
    recipient: str
    message_id: Optional[str] = None
    event_count: int = Field(ge=1)


class ReviewResult(BaseModel):
    ok: bool = True
    needs_review: bool = True
    confirmation_token: str
    ics_content: str
    recipient: str
    subject: str
    event_count: int = Field(ge=1)
