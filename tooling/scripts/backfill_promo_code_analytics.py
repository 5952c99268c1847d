"""Backfill promo code funnel analytics from historical orders.

Intended usage: run once after creating the promo analytics tables, and again
whenever the event log or performance cache is suspected to have drifted. The
run is idempotent: orders that already have a redeem event are skipped and
usage counters are recomputed from the redeem log rather than incremented.

Example::
    python tooling/scripts/backfill_promo_code_analytics.py
    python tooling/scripts/backfill_promo_code_analytics.py --usage-scope touched
"""

# meta: script: promo-analytics-backfill

from __future__ import annotations

import sys
from pathlib import Path


def _configure_path() -> None:
    repo_root = Path(__file__).resolve().parents[2]
    analytics_src = repo_root / "apps" / "analytics" / "src"
    if str(analytics_src) not in sys.path:
        sys.path.insert(0, str(analytics_src))


def main() -> int:
    _configure_path()

    from promo_funnel.core.logging import configure_logging  # type: ignore import-position
    from promo_funnel.core.settings import settings  # type: ignore import-position
    from promo_funnel.tasks.promo_code_backfill import cli  # type: ignore import-position

    configure_logging(
        service_name=settings.service_name,
        environment=settings.environment,
        version=settings.service_version,
        level=settings.log_level,
    )
    return cli(sys.argv[1:])


if __name__ == "__main__":
    sys.exit(main())
