from pydantic import BaseModel, Field

from subtally.schemas.enums import Currency, Language


class PreferencesRecord(BaseModel):
    language: Language = "en"
    default_currency: Currency = Currency.USD
    horizon_days: int = Field(default=365, ge=1)
    first_day_of_week: int = Field(default=0, ge=0, le=1)

    model_config = {"from_attributes": True}


class PreferencesUpdate(BaseModel):
    language: Language | None = None
    default_currency: Currency | None = None
    horizon_days: int | None = Field(default=None, ge=1)
    first_day_of_week: int | None = Field(default=None, ge=0, le=1)
