from sqlalchemy.ext.asyncio import AsyncSession

from subtally.config import settings
from subtally.models.preferences import PREFERENCES_ID, Preferences
from subtally.schemas.enums import Currency
from subtally.schemas.preferences import PreferencesRecord, PreferencesUpdate
from subtally.services.fx import get_display_currency


async def _load_or_create(db: AsyncSession) -> Preferences:
    prefs = await db.get(Preferences, PREFERENCES_ID)
    if prefs is None:
        prefs = Preferences(
            id=PREFERENCES_ID,
            language="en",
            default_currency=Currency.USD.value,
            horizon_days=settings.DEFAULT_HORIZON_DAYS,
            first_day_of_week=0,
        )
        db.add(prefs)
        await db.flush()
    return prefs


async def load_preferences(db: AsyncSession) -> PreferencesRecord:
    return PreferencesRecord.model_validate(await _load_or_create(db))


async def update_preferences(db: AsyncSession, data: PreferencesUpdate) -> PreferencesRecord:
    prefs = await _load_or_create(db)
    for key, value in data.model_dump(exclude_unset=True, exclude_none=True).items():
        if isinstance(value, Currency):
            value = value.value
        setattr(prefs, key, value)
    await db.flush()
    return PreferencesRecord.model_validate(prefs)


def display_currency(prefs: PreferencesRecord) -> Currency:
    """Totals are shown in the language's currency."""
    return get_display_currency(prefs.language)
