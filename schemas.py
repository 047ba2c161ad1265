import datetime as dt
from datetime import date, datetime
from typing import Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
    model_validator,
)

from models import (
    LEGACY_GOAL_ICONS,
    AccountType,
    GoalIcon,
    TransactionCategory,
    TransactionType,
)


def _clean_last4(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None
    if len(value) != 4 or not value.isascii() or not value.isdigit():
        raise ValueError("Must be exactly 4 digits if provided")
    return value


def _strip_text(value: object) -> object:
    return value.strip() if isinstance(value, str) else value


def check_amount_sign(amount_cents: int, type: TransactionType) -> None:
    if amount_cents == 0:
        raise ValueError("Amount must not be zero")
    if type == TransactionType.debit and amount_cents > 0:
        raise ValueError("Debit transactions must have a negative amount")
    if type == TransactionType.credit and amount_cents < 0:
        raise ValueError("Credit transactions must have a positive amount")


class AccountIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=2, max_length=50)
    type: AccountType
    icon_name: Optional[str] = Field(default=None, max_length=40)
    last4: Optional[str] = None

    @field_validator("last4")
    @classmethod
    def clean_last4(cls, value: Optional[str]) -> Optional[str]:
        return _clean_last4(value)

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, value: object) -> object:
        return _strip_text(value)


class AccountUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(default=None, min_length=2, max_length=50)
    type: Optional[AccountType] = None
    icon_name: Optional[str] = Field(default=None, max_length=40)
    last4: Optional[str] = None

    @field_validator("last4")
    @classmethod
    def clean_last4(cls, value: Optional[str]) -> Optional[str]:
        return _clean_last4(value)

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, value: object) -> object:
        return _strip_text(value)


class AccountOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    owner_id: str
    name: str
    type: AccountType
    icon_name: str
    last4: Optional[str]
    created_at: datetime


class TransactionIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    account_id: int
    description: str = Field(..., min_length=2, max_length=100)
    amount_cents: int
    type: TransactionType
    category: TransactionCategory
    date: dt.date
    icon_name: Optional[str] = Field(default=None, max_length=40)

    @field_validator("description", mode="before")
    @classmethod
    def strip_description(cls, value: object) -> object:
        return _strip_text(value)

    @model_validator(mode="after")
    def sign_matches_type(self) -> "TransactionIn":
        check_amount_sign(self.amount_cents, self.type)
        return self


class TransactionUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    account_id: Optional[int] = None
    description: Optional[str] = Field(default=None, min_length=2, max_length=100)
    amount_cents: Optional[int] = None
    type: Optional[TransactionType] = None
    category: Optional[TransactionCategory] = None
    date: Optional[dt.date] = None
    icon_name: Optional[str] = Field(default=None, max_length=40)

    @field_validator("description", mode="before")
    @classmethod
    def strip_description(cls, value: object) -> object:
        return _strip_text(value)


class TransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    owner_id: str
    account_id: int
    description: str
    amount_cents: int
    type: TransactionType
    category: TransactionCategory
    date: date
    icon_name: str


class TransactionPage(BaseModel):
    items: list[TransactionOut]
    next_cursor: Optional[str] = None

    @computed_field
    @property
    def has_more(self) -> bool:
        return self.next_cursor is not None


def _normalize_goal_icon(value: object) -> object:
    if isinstance(value, str):
        return LEGACY_GOAL_ICONS.get(value, value)
    return value


class GoalIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=2, max_length=50)
    target_cents: int = Field(..., gt=0)
    saved_cents: int = Field(default=0, ge=0)
    icon_name: GoalIcon = GoalIcon.target

    @field_validator("icon_name", mode="before")
    @classmethod
    def normalize_icon(cls, value: object) -> object:
        return _normalize_goal_icon(value)

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, value: object) -> object:
        return _strip_text(value)


class GoalUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(default=None, min_length=2, max_length=50)
    target_cents: Optional[int] = Field(default=None, gt=0)
    saved_cents: Optional[int] = Field(default=None, ge=0)
    icon_name: Optional[GoalIcon] = None

    @field_validator("icon_name", mode="before")
    @classmethod
    def normalize_icon(cls, value: object) -> object:
        return _normalize_goal_icon(value)

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, value: object) -> object:
        return _strip_text(value)


class GoalOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    owner_id: str
    name: str
    target_cents: int
    saved_cents: int
    icon_name: str
    created_at: datetime

    @computed_field
    @property
    def progress_percent(self) -> int:
        return min(100, (self.saved_cents * 100) // self.target_cents)

    @computed_field
    @property
    def completed(self) -> bool:
        return self.saved_cents >= self.target_cents


class ProfileIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    full_name: str = Field(..., min_length=1, max_length=120)
    email: str = Field(..., min_length=3, max_length=254, pattern=r"^[^@\s]+@[^@\s]+$")

    @field_validator("full_name", "email", mode="before")
    @classmethod
    def strip_text(cls, value: object) -> object:
        return _strip_text(value)


class ProfileOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    full_name: str
    email: str
    created_at: datetime
