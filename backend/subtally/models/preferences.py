from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from subtally.db import Base

PREFERENCES_ID = 1


class Preferences(Base):
    __tablename__ = "preferences"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=PREFERENCES_ID)
    language: Mapped[str] = mapped_column(String(2), default="en")
    default_currency: Mapped[str] = mapped_column(String(3), default="USD")
    horizon_days: Mapped[int] = mapped_column(Integer, default=365)
    # 0 = Sunday, 1 = Monday
    first_day_of_week: Mapped[int] = mapped_column(Integer, default=0)
