"""Product policy thresholds.

These bands are product decisions taken from observed behaviour of the
budgeting app. Change them here and nowhere else.
"""

from decimal import Decimal

# Zero-based: |unassigned| within 2% of income counts as fully assigned.
ZERO_BASED_TOLERANCE_RATIO = Decimal("0.02")

# Pace: projected variance within +/-5% of the budget total is "on_track".
PACE_TOLERANCE_RATIO = Decimal("0.05")

# 50/30/20 targets (percent of income) and status bands in percentage points.
FIFTY_THIRTY_TWENTY_TARGETS = {"NEED": 50, "WANT": 30, "SAVING": 20}
GROUP_ON_TARGET_POINTS = 5
GROUP_CAUTION_POINTS = 10

# Alert thresholds (percent of budget used).
DEFAULT_ALERT_WARN_PERCENT = 80
DEFAULT_ALERT_CRITICAL_PERCENT = 95
OVER_BUDGET_PERCENT = 100
PROJECTED_OVERSPEND_PERCENT = 110

DEFAULT_PAY_PERIOD_DAYS = 14
