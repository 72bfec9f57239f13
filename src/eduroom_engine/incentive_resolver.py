"""
incentive_resolver.py — Incentive Tier Resolver
===============================================
Maps a team manager's performance metric (e.g. active interns in a period)
onto the tiered incentive and deduction schedules in ManagerRanges.

---------------------------------------------------------------------------
resolve(schedule, metric) → TierResolution
---------------------------------------------------------------------------
  • A tier matches when  min ≤ metric ≤ max.
  • Tiers are scanned in list order and the first match wins, so a shared
    boundary value belongs to the lower tier and an overlapping (badly
    configured) schedule still resolves.
  • A metric below every tier, above every tier or inside a gap returns a
    "no tier" resolution, never an exception.  Callers decide whether
    that means zero or an operator alert.

---------------------------------------------------------------------------
IncentiveCalculator
---------------------------------------------------------------------------
  Resolves both schedules independently and combines them:

    incentive = tier amount              (flat mode)
              = tier amount × metric     (per-unit mode: amount per intern)
    net       = incentive − deduction    (a no-tier side contributes 0)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence

from eduroom_engine.models import ManagerRanges, RangeTier, ScheduleKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TierResolution:
    """Result of one resolve() call."""
    metric:  float
    tier:    Optional[RangeTier] = None
    index:   Optional[int] = None      # position of the tier in the schedule

    @property
    def matched(self) -> bool:
        return self.tier is not None

    @property
    def amount(self) -> Optional[float]:
        return self.tier.amount if self.tier is not None else None


def resolve(schedule: Sequence[RangeTier], metric: float) -> TierResolution:
    """Return the first tier containing `metric`, or a no-tier resolution."""
    for i, tier in enumerate(schedule):
        if tier.contains(metric):
            return TierResolution(metric=metric, tier=tier, index=i)
    return TierResolution(metric=metric)


@dataclass
class IncentiveStatement:
    """Combined incentive/deduction outcome for one manager and metric."""
    team_manager_id: int
    metric:          float
    per_unit:        bool
    incentive:       float
    deduction:       float
    incentive_tier:  Optional[RangeTier] = None
    deduction_tier:  Optional[RangeTier] = None
    gaps:            list[ScheduleKind] = field(default_factory=list)

    @property
    def net(self) -> float:
        return self.incentive - self.deduction


class IncentiveCalculator:
    """
    Usage::

        calc = IncentiveCalculator(per_unit=True)
        stmt = calc.evaluate(db.load_manager_ranges(7), metric=active_interns)
    """

    def __init__(self, per_unit: bool = False):
        self.per_unit = per_unit

    def _amount(self, resolution: TierResolution) -> float:
        if not resolution.matched:
            return 0.0
        if self.per_unit:
            return resolution.amount * resolution.metric
        return resolution.amount

    def evaluate(self, ranges: ManagerRanges, metric: float) -> IncentiveStatement:
        inc = resolve(ranges.schedule(ScheduleKind.INCENTIVE), metric)
        ded = resolve(ranges.schedule(ScheduleKind.DEDUCTION), metric)

        gaps = [kind for kind, res in ((ScheduleKind.INCENTIVE, inc), (ScheduleKind.DEDUCTION, ded))
                if not res.matched]
        for kind in gaps:
            logger.info(
                "Manager %s: metric %s falls outside every %s tier",
                ranges.team_manager_id, metric, kind.value,
            )

        return IncentiveStatement(
            team_manager_id = ranges.team_manager_id,
            metric          = metric,
            per_unit        = self.per_unit,
            incentive       = self._amount(inc),
            deduction       = self._amount(ded),
            incentive_tier  = inc.tier,
            deduction_tier  = ded.tier,
            gaps            = gaps,
        )
