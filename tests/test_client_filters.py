from __future__ import annotations

import random
import unittest
from datetime import date, timedelta

from inventory.client.filters import FilterMemo, FilterState, active_filter_count, filter_pcs, matches_search

TODAY = date(2026, 6, 1)


def _pc(index: int, **overrides: object) -> dict[str, object]:
    pc: dict[str, object] = {
        "id": f"uuid-{index}",
        "pc_id": f"PC-{index:06d}",
        "brand": "Dell",
        "model": "Latitude",
        "serial_number": f"SN{index:06d}",
        "ram": 16,
        "status": "active",
        "employee_id": None,
        "employee": None,
        "purchase_date": "2024-01-01",
        "warranty_expiry": "2028-01-01",
    }
    pc.update(overrides)
    return pc


def _random_pc(rng: random.Random, index: int) -> dict[str, object]:
    assigned = rng.random() < 0.5
    return _pc(
        index,
        brand=rng.choice(["Dell", "HP", "Lenovo", "Apple"]),
        ram=rng.choice([4, 8, 16, 32, 64]),
        status=rng.choice(["active", "maintenance", "retired"]),
        employee_id=f"e-{index}" if assigned else None,
        employee={"id": f"e-{index}", "name": rng.choice(["Anna Verdi", "Luca Bianchi"])} if assigned else None,
        purchase_date=(date(2022, 1, 1) + timedelta(days=rng.randint(0, 1200))).isoformat(),
        warranty_expiry=(TODAY + timedelta(days=rng.randint(-60, 400))).isoformat(),
    )


def _random_state(rng: random.Random) -> FilterState:
    ram_min = rng.choice([None, 8, 16])
    return FilterState(
        search=rng.choice(["", "", "dell", "anna", "PC-0000", "zzz"]),
        status=rng.choice([None, "all", "active", "maintenance"]),
        brand=rng.choice([None, "all", "HP", "Lenovo"]),
        ram_min=ram_min,
        ram_max=rng.choice([None, 32]),
        assignment_status=rng.choice([None, "assigned", "unassigned"]),
        purchase_date_from=rng.choice([None, date(2023, 1, 1)]),
        purchase_date_to=rng.choice([None, date(2024, 12, 31)]),
        warranty_expiring=rng.random() < 0.3,
    )


class FilterPcsTests(unittest.TestCase):
    def test_default_state_keeps_everything(self) -> None:
        pcs = [_pc(1), _pc(2, status="retired")]

        self.assertEqual(filter_pcs(pcs, FilterState(), TODAY), pcs)
        self.assertEqual(active_filter_count(FilterState()), 0)

    def test_all_sentinel_counts_as_inactive(self) -> None:
        state = FilterState(status="all", brand="all", search="   ")

        self.assertEqual(active_filter_count(state), 0)

    def test_active_filter_count(self) -> None:
        state = FilterState(search="dell", status="active", ram_min=8, warranty_expiring=True)

        self.assertEqual(active_filter_count(state), 4)

    def test_search_covers_tag_serial_and_employee(self) -> None:
        pc = _pc(7, employee={"id": "e-1", "name": "Anna Verdi"}, employee_id="e-1")

        self.assertTrue(matches_search(pc, "pc-000007"))
        self.assertTrue(matches_search(pc, "sn000007"))
        self.assertTrue(matches_search(pc, "verdi"))
        self.assertFalse(matches_search(pc, "bianchi"))

    def test_warranty_expiring_window(self) -> None:
        pcs = [
            _pc(1, warranty_expiry=TODAY.isoformat()),
            _pc(2, warranty_expiry=(TODAY + timedelta(days=30)).isoformat()),
            _pc(3, warranty_expiry=(TODAY + timedelta(days=31)).isoformat()),
            _pc(4, warranty_expiry=(TODAY - timedelta(days=1)).isoformat()),
        ]

        result = filter_pcs(pcs, FilterState(warranty_expiring=True), TODAY)

        self.assertEqual([pc["id"] for pc in result], ["uuid-1", "uuid-2"])

    def test_ram_and_date_bounds_are_inclusive(self) -> None:
        pcs = [_pc(1, ram=8, purchase_date="2024-01-01"), _pc(2, ram=32, purchase_date="2024-06-30")]
        state = FilterState(
            ram_min=8,
            ram_max=32,
            purchase_date_from=date(2024, 1, 1),
            purchase_date_to=date(2024, 6, 30),
        )

        self.assertEqual(len(filter_pcs(pcs, state, TODAY)), 2)

    def test_random_states_match_reference_predicate(self) -> None:
        rng = random.Random(20261019)
        pcs = [_random_pc(rng, index) for index in range(60)]

        for round_index in range(150):
            state = _random_state(rng)
            with self.subTest(round=round_index, state=state):
                result = filter_pcs(pcs, state, TODAY)
                result_ids = [pc["id"] for pc in result]

                # Order is preserved and the result is a subset of the input.
                self.assertEqual(result_ids, [pc["id"] for pc in pcs if pc in result])

                for pc in result:
                    if state.status not in (None, "all"):
                        self.assertEqual(pc["status"], state.status)
                    if state.brand not in (None, "all"):
                        self.assertEqual(pc["brand"], state.brand)
                    if state.ram_min is not None:
                        self.assertGreaterEqual(pc["ram"], state.ram_min)
                    if state.ram_max is not None:
                        self.assertLessEqual(pc["ram"], state.ram_max)
                    if state.assignment_status == "assigned":
                        self.assertIsNotNone(pc["employee_id"])
                    if state.assignment_status == "unassigned":
                        self.assertIsNone(pc["employee_id"])
                    if state.warranty_expiring:
                        remaining = (date.fromisoformat(str(pc["warranty_expiry"])) - TODAY).days
                        self.assertTrue(0 <= remaining <= 30)
                    self.assertTrue(matches_search(pc, state.search))

                # Dropping every criterion can only widen the result.
                self.assertLessEqual(len(result), len(filter_pcs(pcs, FilterState(), TODAY)))


class FilterMemoTests(unittest.TestCase):
    def test_equal_content_hits_cache(self) -> None:
        memo = FilterMemo()
        state = FilterState(brand="Dell")

        first = memo.filter([_pc(1), _pc(2, brand="HP")], state, TODAY)
        second = memo.filter([_pc(1), _pc(2, brand="HP")], FilterState(brand="Dell"), TODAY)

        self.assertEqual(first, second)
        self.assertEqual((memo.hits, memo.misses), (1, 1))

    def test_changed_content_misses(self) -> None:
        memo = FilterMemo()

        memo.filter([_pc(1)], FilterState(), TODAY)
        memo.filter([_pc(1, ram=32)], FilterState(), TODAY)
        memo.filter([_pc(1)], FilterState(), TODAY + timedelta(days=1))

        self.assertEqual((memo.hits, memo.misses), (0, 3))

    def test_oldest_entries_are_evicted(self) -> None:
        memo = FilterMemo(max_entries=2)

        for ram in (4, 8, 16):
            memo.filter([_pc(1, ram=ram)], FilterState(), TODAY)
        memo.filter([_pc(1, ram=4)], FilterState(), TODAY)

        self.assertEqual(memo.misses, 4)

    def test_cache_hit_returns_elements_of_current_collection(self) -> None:
        memo = FilterMemo()
        state = FilterState(brand="Dell")
        memo.filter([_pc(1), _pc(2, brand="HP")], state, TODAY)

        current = [_pc(1), _pc(2, brand="HP")]
        result = memo.filter(current, state, TODAY)

        self.assertEqual(memo.hits, 1)
        self.assertEqual(len(result), 1)
        self.assertIs(result[0], current[0])

    def test_returned_list_is_a_copy(self) -> None:
        memo = FilterMemo()
        result = memo.filter([_pc(1)], FilterState(), TODAY)
        result.clear()

        self.assertEqual(len(memo.filter([_pc(1)], FilterState(), TODAY)), 1)


if __name__ == "__main__":
    unittest.main()
