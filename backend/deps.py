from datetime import datetime

from database.db import get_active_academic_year_id


def get_now() -> datetime:
    """Request clock. Overridden in tests through `app.dependency_overrides`."""
    return datetime.now().replace(microsecond=0)


def get_academic_year_id() -> int | None:
    return get_active_academic_year_id()
