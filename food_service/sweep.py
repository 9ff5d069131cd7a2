"""
One-off status sweep, for bringing old orders up to date without starting
the server.

Usage: python -m food_service.sweep  (or the food-service-sweep script)
"""
import sys

from . import db
from .config import get_settings
from .lifecycle import Thresholds, sweep


def main() -> int:
    settings = get_settings()
    engine = db.make_engine(settings.database_url)
    db.init_db(engine)
    session = db.make_session_factory(engine)()

    thresholds = Thresholds(settings.preparing_minutes, settings.delivery_minutes)
    print(
        f"Sweeping orders (Preparing -> On the way after {thresholds.preparing_minutes} min, "
        f"On the way -> Delivered after {thresholds.preparing_minutes + thresholds.delivery_minutes} min)"
    )
    try:
        result = sweep(session, thresholds)
    except Exception as e:
        session.rollback()
        print(f"Sweep failed: {e}", file=sys.stderr)
        return 1
    finally:
        session.close()
        engine.dispose()

    print(f"  Orders moved to 'On the way': {result.to_on_the_way}")
    print(f"  Orders moved to 'Delivered':  {result.to_delivered}")
    print(f"  Total updated: {result.total}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
