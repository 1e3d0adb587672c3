from __future__ import annotations

import hashlib
import json
from collections import OrderedDict
from collections.abc import Mapping, Sequence
from dataclasses import asdict, dataclass, fields
from datetime import date, datetime
from typing import Any, Literal

WARRANTY_HORIZON_DAYS = 30
ANY = "all"

PcRecord = Mapping[str, Any]


def as_date(value: Any) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def days_until(value: Any, today: date) -> int | None:
    target = as_date(value)
    if target is None:
        return None
    return (target - today).days


@dataclass(frozen=True)
class FilterState:
    search: str = ""
    status: str | None = None
    brand: str | None = None
    ram_min: int | None = None
    ram_max: int | None = None
    assignment_status: Literal["assigned", "unassigned"] | None = None
    purchase_date_from: date | None = None
    purchase_date_to: date | None = None
    warranty_expiring: bool = False


def _is_active(name: str, value: Any) -> bool:
    if name == "search":
        return bool(value and str(value).strip())
    if isinstance(value, bool):
        return value
    return value not in (None, "", ANY)


def active_filter_count(state: FilterState) -> int:
    return sum(1 for field in fields(state) if _is_active(field.name, getattr(state, field.name)))


def _employee_name(pc: PcRecord) -> str:
    employee = pc.get("employee")
    if isinstance(employee, Mapping):
        return str(employee.get("name") or "")
    return ""


def matches_search(pc: PcRecord, search: str) -> bool:
    needle = search.strip().lower()
    if not needle:
        return True
    haystack = (
        pc.get("pc_id"),
        pc.get("brand"),
        pc.get("model"),
        pc.get("serial_number"),
        _employee_name(pc),
    )
    return any(needle in str(value).lower() for value in haystack if value)


def matches(pc: PcRecord, state: FilterState, today: date) -> bool:
    if not matches_search(pc, state.search):
        return False
    if _is_active("status", state.status) and pc.get("status") != state.status:
        return False
    if _is_active("brand", state.brand) and pc.get("brand") != state.brand:
        return False

    ram = int(pc.get("ram") or 0)
    if state.ram_min is not None and ram < state.ram_min:
        return False
    if state.ram_max is not None and ram > state.ram_max:
        return False

    assigned = bool(pc.get("employee_id"))
    if state.assignment_status == "assigned" and not assigned:
        return False
    if state.assignment_status == "unassigned" and assigned:
        return False

    purchased = as_date(pc.get("purchase_date"))
    if state.purchase_date_from is not None and (purchased is None or purchased < state.purchase_date_from):
        return False
    if state.purchase_date_to is not None and (purchased is None or purchased > state.purchase_date_to):
        return False

    if state.warranty_expiring:
        remaining = days_until(pc.get("warranty_expiry"), today)
        if remaining is None or not 0 <= remaining <= WARRANTY_HORIZON_DAYS:
            return False
    return True


def filter_pcs(pcs: Sequence[PcRecord], state: FilterState, today: date | None = None) -> list[PcRecord]:
    """Conjunction of every active criterion; input order is kept."""
    today = today or date.today()
    return [pc for pc in pcs if matches(pc, state, today)]


def content_hash(pcs: Sequence[PcRecord], state: FilterState, today: date) -> str:
    payload = json.dumps(
        {"pcs": list(pcs), "state": asdict(state), "today": today},
        sort_keys=True,
        default=str,
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class FilterMemo:
    """Remembers recent ``filter_pcs`` results by content, not identity.

    Matches are stored as positions, so a hit returns elements of the
    collection passed in on that call.
    """

    def __init__(self, max_entries: int = 32):
        self.max_entries = max_entries
        self.hits = 0
        self.misses = 0
        self._results: OrderedDict[str, list[int]] = OrderedDict()

    def filter(self, pcs: Sequence[PcRecord], state: FilterState, today: date | None = None) -> list[PcRecord]:
        today = today or date.today()
        key = content_hash(pcs, state, today)
        positions = self._results.get(key)
        if positions is not None:
            self.hits += 1
            self._results.move_to_end(key)
            return [pcs[index] for index in positions]

        self.misses += 1
        positions = [index for index, pc in enumerate(pcs) if matches(pc, state, today)]
        self._results[key] = positions
        if len(self._results) > self.max_entries:
            self._results.popitem(last=False)
        return [pcs[index] for index in positions]
