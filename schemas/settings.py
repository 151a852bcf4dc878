from __future__ import annotations

from typing import Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SettingsOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    base_currency: str
    platforms: list[str] = Field(default_factory=list)


class BaseCurrencyUpdate(BaseModel):
    base_currency: str

    @field_validator("base_currency")
    @classmethod
    def upper(cls, value: str) -> str:
        return (value or "").strip().upper()


class PlatformsUpdate(BaseModel):
    # newline-separated text from a textarea, or an explicit list
    platforms: Union[str, list[str]]
