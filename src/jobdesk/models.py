import datetime as dt

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class Document(BaseModel):
    """Base for models stored as camelCase documents."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class CustomerFields(Document):
    name: str = Field(default="", max_length=200)
    email: str = ""
    phone: str = ""
    location: str = ""
    billing_address: str = ""
    post_code: str = ""


class Customer(CustomerFields):
    id: str
    name: str = "Unnamed Customer"
    name_lower: str = ""
    created_at: dt.datetime | None = None
    updated_at: dt.datetime | None = None

    @field_validator("name", mode="before")
    @classmethod
    def _default_name(cls, value: object) -> object:
        return value or "Unnamed Customer"

    @field_validator("email", "phone", "location", "billing_address", "post_code", "name_lower", mode="before")
    @classmethod
    def _blank_if_missing(cls, value: object) -> object:
        return "" if value is None else value


class JobFields(Document):
    date: dt.date = Field(default_factory=dt.date.today)
    has_underlay: bool = False
    has_grippers: bool = False
    floor_is_good: bool = False
    old_flooring_removed: bool = False
    furniture_removal: bool = False
    concrete: bool = False
    doors_need_cutting: int = Field(default=0, ge=0)
    number_of_door_plate_needed: int = Field(default=0, ge=0)
    comments: str = ""


class Job(JobFields):
    id: str
    customer_id: str
    created_at: dt.datetime | None = None
    updated_at: dt.datetime | None = None
