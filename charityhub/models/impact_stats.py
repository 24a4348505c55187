from typing import Any, Mapping

import sqlalchemy as sa
from sqlalchemy import BigInteger, Integer
from sqlalchemy.orm import Mapped, mapped_column

from charityhub.domain import StatsSnapshot, to_cents
from charityhub.extensions import db

STATS_ROW_ID = 1


class ImpactStats(db.Model):
    """The single impact aggregate. `raised_cents` only moves through atomic increments."""

    __tablename__ = "impact_stats"
    __table_args__ = (
        sa.CheckConstraint(f"id = {STATS_ROW_ID}", name="ck_impact_stats_singleton"),
        sa.CheckConstraint("raised_cents >= 0", name="ck_impact_stats_raised_nonneg"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=STATS_ROW_ID, autoincrement=False)

    raised_cents: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    # Externally curated counters, not derived from donations.
    lives: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    students: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    meals: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    medical: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    homes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    @classmethod
    def seeded(cls, defaults: Mapping[str, Any]) -> "ImpactStats":
        return cls(
            id=STATS_ROW_ID,
            raised_cents=to_cents(defaults.get("raised", 0)),
            lives=int(defaults.get("lives", 0) or 0),
            students=int(defaults.get("students", 0) or 0),
            meals=int(defaults.get("meals", 0) or 0),
            medical=int(defaults.get("medical", 0) or 0),
            homes=int(defaults.get("homes", 0) or 0),
        )

    @classmethod
    def increment_stmt(cls, amount_cents: int):
        return (
            sa.update(cls)
            .where(cls.id == STATS_ROW_ID)
            .values(raised_cents=cls.raised_cents + int(amount_cents))
        )

    def snapshot(self) -> StatsSnapshot:
        return StatsSnapshot(
            raised_cents=int(self.raised_cents or 0),
            lives=int(self.lives or 0),
            students=int(self.students or 0),
            meals=int(self.meals or 0),
            medical=int(self.medical or 0),
            homes=int(self.homes or 0),
        )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<ImpactStats raised={self.raised_cents}c lives={self.lives}>"
