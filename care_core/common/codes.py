# care_core/common/codes.py
from __future__ import annotations

import re
from datetime import date

from django.utils import timezone


def next_code(model, *, prefix: str, on: date | None = None, stamp_format: str = "%Y%m%d", field: str = "code") -> str:
    """
    Human-readable sequential codes, e.g. PAY-20250105-001.

    Sequence resets per stamp (day for most entities, month for billing periods).
    Must run inside a transaction; the latest row for the stamp is locked.
    """
    stamp = (on or timezone.localdate()).strftime(stamp_format)
    head = f"{prefix}-{stamp}-"

    latest = (
        model.objects.select_for_update()
        .filter(**{f"{field}__startswith": head})
        .order_by(f"-{field}")
        .values_list(field, flat=True)
        .first()
    )
    if not latest:
        return f"{head}001"

    m = re.match(rf"^{re.escape(head)}(\d+)$", latest)
    if not m:
        return f"{head}{timezone.now().strftime('%H%M%S')}"

    n = int(m.group(1)) + 1
    return f"{head}{n:03d}"
