"""
Book record schema - the raw input items indexed for recommendations.
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .config import KEY_PREFIX


class Edition(str, Enum):
    ENGLISH = "english"
    SPANISH = "spanish"
    FRENCH = "french"


class InventoryStatus(str, Enum):
    ON_LOAN = "on_loan"
    AVAILABLE = "available"
    MAINTENANCE = "maintenance"


# Spellings seen in stored documents that map onto a canonical status
_STATUS_ALIASES = {"onloan": "on_loan"}


class Inventory(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: InventoryStatus
    stock_id: str

    @field_validator('status', mode='before')
    @classmethod
    def status_is_case_insensitive(cls, v):
        if isinstance(v, str):
            v = v.strip().lower()
            return _STATUS_ALIASES.get(v, v)
        return v


class Metrics(BaseModel):
    model_config = ConfigDict(frozen=True)

    rating_votes: int = 0
    score: float = 0.0


class Book(BaseModel):
    """A single book record. Immutable once loaded."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    author: str = ""
    description: str = ""
    genres: List[str] = Field(default_factory=list)
    editions: List[Edition] = Field(default_factory=list)
    inventory: List[Inventory] = Field(default_factory=list)
    metrics: Metrics = Field(default_factory=Metrics)
    pages: int = 0
    url: str = ""
    year_published: int = 0
    embedding: Optional[List[float]] = None

    @field_validator('id', mode='before')
    @classmethod
    def id_must_not_be_empty(cls, v):
        if isinstance(v, int) and not isinstance(v, bool):
            v = str(v)
        if not isinstance(v, str) or not v.strip():
            raise ValueError('id cannot be empty')
        return v.strip()

    @field_validator('title')
    @classmethod
    def title_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('title cannot be empty')
        return v

    @field_validator('editions', mode='before')
    @classmethod
    def editions_are_case_insensitive(cls, v):
        if isinstance(v, list):
            return [e.strip().lower() if isinstance(e, str) else e for e in v]
        return v

    @property
    def key(self) -> str:
        """Deterministic store key for this record."""
        return f"{KEY_PREFIX}{self.id}"
