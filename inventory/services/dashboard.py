from __future__ import annotations

from collections.abc import Iterable
from datetime import date, timedelta

from inventory.models import Pc, PcStatus
from inventory.schemas import DashboardStats

WARRANTY_HORIZON_DAYS = 30


def is_warranty_expiring(warranty_expiry: date, today: date, *, horizon_days: int = WARRANTY_HORIZON_DAYS) -> bool:
    return today <= warranty_expiry <= today + timedelta(days=horizon_days)


def compute_dashboard_stats(pcs: Iterable[Pc], employee_count: int, today: date) -> DashboardStats:
    total = active = maintenance = retired = assigned = available = expiring = 0
    for pc in pcs:
        total += 1
        if pc.status == PcStatus.ACTIVE:
            active += 1
        elif pc.status == PcStatus.MAINTENANCE:
            maintenance += 1
        elif pc.status == PcStatus.RETIRED:
            retired += 1

        if pc.employee_id:
            assigned += 1
        elif pc.status == PcStatus.ACTIVE:
            available += 1

        if is_warranty_expiring(pc.warranty_expiry, today):
            expiring += 1

    return DashboardStats(
        total_pcs=total,
        active_pcs=active,
        maintenance_pcs=maintenance,
        retired_pcs=retired,
        assigned_pcs=assigned,
        available_pcs=available,
        expiring_warranties=expiring,
        total_employees=employee_count,
    )
