from __future__ import annotations

from typing import Annotated, Literal, Optional, Union

from pydantic import Field, field_validator

from dancecart.schemas.common import CamelModel


class VenueAddress(CamelModel):
    line1: Optional[str] = None
    line2: Optional[str] = None
    post_code: Optional[str] = None
    city: Optional[str] = None
    county: Optional[str] = None
    country: Optional[str] = None


class ZoomMeeting(CamelModel):
    meeting_id: str
    password: Optional[str] = None
    join_url: Optional[str] = None


class CourseBase(CamelModel):
    id: str
    name: str
    price: int = 0
    original_price: Optional[int] = None
    current_price: Optional[int] = None
    deposit_price: Optional[int] = None
    taster_price: int = 0
    has_taster_classes: bool = False
    is_accepting_deposits: bool = False
    fully_booked: bool = False
    available_spaces: Optional[int] = None
    total_spaces: Optional[int] = None
    active: bool = True
    weeks: Optional[int] = None

    @field_validator("price", "taster_price", mode="before")
    @classmethod
    def _none_is_zero(cls, v):
        return 0 if v is None else v

    @property
    def effective_price(self) -> int:
        return self.current_price if self.current_price is not None else self.price

    @property
    def offers_taster_classes(self) -> bool:
        return self.has_taster_classes and self.taster_price > 0

    @property
    def accepts_deposit(self) -> bool:
        return (
            self.is_accepting_deposits
            and self.deposit_price is not None
            and 0 < self.deposit_price < self.effective_price
        )

    @property
    def discount_amount(self) -> Optional[int]:
        if self.original_price is not None and self.current_price is not None:
            return self.original_price - self.current_price
        return None


class StudioCourse(CourseBase):
    type: Literal["StudioCourse"] = "StudioCourse"

    address: Optional[VenueAddress] = None
    studio_instructions: Optional[str] = None
    equipment: Optional[str] = None
    parking_info: Optional[str] = None

    @property
    def kind_display(self) -> str:
        return "Studio Course"


class OnlineCourse(CourseBase):
    type: Literal["OnlineCourse"] = "OnlineCourse"

    zoom_meeting: Optional[ZoomMeeting] = None
    technical_requirements: Optional[str] = None
    platform_instructions: Optional[str] = None

    @property
    def kind_display(self) -> str:
        return "Online Course"


Course = Annotated[Union[StudioCourse, OnlineCourse], Field(discriminator="type")]
