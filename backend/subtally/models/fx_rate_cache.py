from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from subtally.db import Base

FX_CACHE_ID = 1


class FxRateCache(Base):
    __tablename__ = "fx_rate_cache"

    # Single row, always FX_CACHE_ID
    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=FX_CACHE_ID)
    usd_to_krw: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)
    krw_to_usd: Mapped[Decimal] = mapped_column(Numeric(18, 12), nullable=False)
    last_updated: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    source: Mapped[str] = mapped_column(String(50), nullable=False)
