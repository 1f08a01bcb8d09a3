"""
Concurrent issuance and audit append.

Threads share one file-backed SQLite database.  Every transaction begins
IMMEDIATE, so writers serialise on the database lock; these tests check
that serialisation never lets a unit be issued twice and never leaves a
gap or a fork in the audit chain.

Expected behavior:
- Overlapping confirm_issue calls for the same units: each unit is issued
  by exactly one caller, with exactly one Issuance row
- Concurrent emergency issuance: the O- stock is split, never duplicated
- Concurrent audit appends: seqs 1..N with no gaps, chain verifies
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import date
from threading import Barrier

import pytest

from blood_kernel.domain.dtos import AuditEntryData, UnitStatus
from blood_services import RequestContext

pytestmark = pytest.mark.slow_locks

THREADS = 6


def _run_together(count, fn):
    """Run ``fn(i)`` on ``count`` threads released at the same moment."""
    barrier = Barrier(count)

    def worker(i):
        barrier.wait()
        return fn(i)

    with ThreadPoolExecutor(max_workers=count) as pool:
        return list(pool.map(worker, range(count)))


class TestOverlappingIssuance:

    def test_same_units_issued_once(self, bank, seed_units):
        ids = seed_units(*(("A+", d) for d in range(5)))

        results = _run_together(
            THREADS,
            lambda i: bank.confirm_issue(
                ids, context=RequestContext(actor_id=f"tech-{i}")
            ),
        )

        issued = [u.id for batch in results for u in batch]
        assert sorted(issued) == sorted(ids)
        assert len(set(issued)) == len(issued)
        assert len(bank.issuances_for(ids)) == len(ids)
        assert all(bank.get_unit(i).status is UnitStatus.ISSUED for i in ids)

    def test_overlapping_selections(self, bank, seed_units):
        """Two clerks select the same stock; only one confirmation wins each unit."""
        ids = seed_units(("O+", 1), ("O+", 2), ("O+", 3))

        selections = _run_together(2, lambda i: bank.select_for_routine("O+", 3))
        assert selections[0].chosen_ids == selections[1].chosen_ids

        results = _run_together(
            2, lambda i: bank.confirm_issue(selections[i].chosen_ids)
        )

        assert sorted(len(r) for r in results) == [0, 3]
        assert bank.count_available("O+") == 0
        assert len(bank.issuances_for(ids)) == 3

    def test_concurrent_emergency_splits_stock(self, bank, seed_units):
        o_neg = seed_units(*(("O-", d) for d in range(8)))

        results = _run_together(THREADS, lambda i: bank.issue_emergency_o_neg())

        issued = [u.id for batch in results for u in batch]
        assert sorted(issued) == sorted(o_neg)
        assert bank.count_available() == 0
        # exactly one caller found stock; the rest recorded a failed attempt
        assert sum(1 for batch in results if batch) == 1

    def test_chain_valid_after_races(self, bank, seed_units):
        ids = seed_units(("B+", 1), ("B+", 2))

        _run_together(THREADS, lambda i: bank.confirm_issue(ids))

        verification = bank.verify_audit_chain()
        assert verification.valid
        # two donations plus one confirmation per thread
        assert verification.checked == 2 + THREADS


class TestConcurrentAppend:

    def test_seqs_contiguous(self, bank):
        per_thread = 5

        def append_many(i):
            return [
                bank.append_audit(AuditEntryData(action="Researcher.Query", actor_id=f"t{i}-{n}"))
                for n in range(per_thread)
            ]

        results = _run_together(THREADS, append_many)

        seqs = sorted(s for batch in results for s in batch)
        assert seqs == list(range(1, THREADS * per_thread + 1))
        verification = bank.verify_audit_chain()
        assert verification.valid
        assert verification.checked == THREADS * per_thread

    def test_concurrent_donations(self, bank):
        units = _run_together(
            THREADS,
            lambda i: bank.add_donation(
                "AB-", date(2024, 1, 1 + i), "123456789", f"Donor {i}"
            ),
        )

        assert len({u.id for u in units}) == THREADS
        assert bank.count_available("AB-") == THREADS
        assert bank.verify_audit_chain().checked == THREADS
