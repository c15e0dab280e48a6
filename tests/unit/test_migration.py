"""
Unit tests for migration candidate selection and the claim protocol.
Tests filevault/storage/migration.py
"""
from datetime import timedelta

import pytest

from filevault.core.errors import ErrorCode
from filevault.models.file import File, MigrationStatus, StorageTier
from filevault.storage.migration import MigrationClaims, MigrationSelector


@pytest.fixture
def selector(db, clock):
    return MigrationSelector(db, clock)


@pytest.fixture
def claims(db, clock):
    return MigrationClaims(db, clock)


def ids(files):
    return [f.id for f in files]


@pytest.mark.unit
class TestColdCandidates:
    """Test MigrationSelector.cold_candidates"""

    def test_inactivity_cutoff(self, selector, make_file, clock):
        file = make_file(last_access_at=clock() - timedelta(days=31))

        assert ids(selector.cold_candidates(days_inactive=30)) == [file.id]
        assert selector.cold_candidates(days_inactive=32) == []

    def test_most_stale_first(self, selector, make_file, clock):
        recent = make_file(last_access_at=clock() - timedelta(days=10))
        stale = make_file(last_access_at=clock() - timedelta(days=40))
        middle = make_file(last_access_at=clock() - timedelta(days=20))

        assert ids(selector.cold_candidates(7)) == [stale.id, middle.id, recent.id]

    def test_only_hot_tier(self, selector, make_file, clock):
        make_file(storage_tier=StorageTier.COLD, last_access_at=clock() - timedelta(days=40))

        assert selector.cold_candidates(7) == []

    def test_excludes_deleted(self, selector, make_file, clock):
        make_file(is_deleted=True, last_access_at=clock() - timedelta(days=40))

        assert selector.cold_candidates(7) == []

    @pytest.mark.parametrize("status", [MigrationStatus.PENDING, MigrationStatus.IN_PROGRESS])
    def test_excludes_active_migrations(self, selector, make_file, clock, status):
        make_file(migration_status=status, last_access_at=clock() - timedelta(days=40))

        assert selector.cold_candidates(7) == []

    @pytest.mark.parametrize("status", [
        MigrationStatus.NONE, MigrationStatus.FAILED, MigrationStatus.COMPLETED,
    ])
    def test_includes_settled_states(self, selector, make_file, clock, status):
        file = make_file(migration_status=status, last_access_at=clock() - timedelta(days=40))

        assert ids(selector.cold_candidates(7)) == [file.id]

    def test_limit(self, selector, make_file, clock):
        for _ in range(5):
            make_file(last_access_at=clock() - timedelta(days=40))

        assert len(selector.cold_candidates(7, limit=3)) == 3


@pytest.mark.unit
class TestHotCandidates:
    """Test MigrationSelector.hot_candidates"""

    def test_popular_and_recent(self, selector, make_file, clock):
        file = make_file(
            storage_tier=StorageTier.COLD,
            downloads=6,
            last_download_at=clock() - timedelta(days=1),
        )

        assert ids(selector.hot_candidates(download_threshold=5)) == [file.id]

    def test_below_threshold(self, selector, make_file, clock):
        make_file(storage_tier=StorageTier.COLD, downloads=4, last_download_at=clock())

        assert selector.hot_candidates(5) == []

    def test_stale_downloads(self, selector, make_file, clock):
        make_file(
            storage_tier=StorageTier.COLD,
            downloads=50,
            last_download_at=clock() - timedelta(days=8),
        )

        assert selector.hot_candidates(5) == []

    def test_most_popular_first(self, selector, make_file, clock):
        low = make_file(storage_tier=StorageTier.COLD, downloads=5, last_download_at=clock())
        high = make_file(storage_tier=StorageTier.COLD, downloads=50, last_download_at=clock())

        assert ids(selector.hot_candidates(5)) == [high.id, low.id]

    def test_only_cold_tier(self, selector, make_file, clock):
        make_file(storage_tier=StorageTier.HOT, downloads=50, last_download_at=clock())

        assert selector.hot_candidates(5) == []

    @pytest.mark.parametrize("status", [MigrationStatus.PENDING, MigrationStatus.IN_PROGRESS])
    def test_excludes_active_migrations(self, selector, make_file, clock, status):
        make_file(
            storage_tier=StorageTier.COLD,
            downloads=50,
            last_download_at=clock(),
            migration_status=status,
        )

        assert selector.hot_candidates(5) == []


@pytest.mark.unit
class TestSweepSelections:
    """Test expired_files, inactive_files and stale_claims"""

    def test_expired_files_ordering(self, selector, make_file, clock):
        later = make_file(expires_in=timedelta(days=1))
        sooner = make_file(expires_in=timedelta(hours=1))
        make_file(expires_in=timedelta(days=10))
        make_file()
        clock.advance(days=2)

        assert ids(selector.expired_files()) == [sooner.id, later.id]

    def test_expired_excludes_deleted(self, selector, make_file, clock):
        make_file(expires_in=timedelta(hours=1), is_deleted=True)
        clock.advance(days=1)

        assert selector.expired_files() == []

    def test_inactive_never_downloaded(self, selector, make_file, clock):
        old = make_file(created_at=clock() - timedelta(days=100))
        make_file(created_at=clock() - timedelta(days=10))

        assert ids(selector.inactive_files(90)) == [old.id]

    def test_inactive_last_download(self, selector, make_file, clock):
        idle = make_file(
            created_at=clock() - timedelta(days=200),
            last_download_at=clock() - timedelta(days=95),
        )
        make_file(
            created_at=clock() - timedelta(days=200),
            last_download_at=clock() - timedelta(days=5),
        )

        assert ids(selector.inactive_files(90)) == [idle.id]

    def test_stale_claims(self, selector, claims, make_file, clock):
        file = make_file()
        claims.claim(file.id)
        claims.start(file.id)

        assert selector.stale_claims(timedelta(minutes=60)) == []
        clock.advance(minutes=61)
        assert ids(selector.stale_claims(timedelta(minutes=60))) == [file.id]

    def test_stale_claims_include_pending(self, selector, claims, make_file, clock):
        file = make_file()
        claims.claim(file.id)
        clock.advance(minutes=61)

        assert ids(selector.stale_claims(timedelta(minutes=60))) == [file.id]


@pytest.mark.unit
class TestClaimProtocol:
    """Test MigrationClaims transitions"""

    def status(self, db, file_id):
        db.expire_all()
        return db.get(File, file_id).migration_status

    def test_claim_sets_pending(self, db, claims, make_file, clock):
        file = make_file()

        result = claims.claim(file.id)

        assert result.ok
        assert self.status(db, file.id) == MigrationStatus.PENDING
        assert db.get(File, file.id).migration_claimed_at == clock()

    def test_second_claim_conflicts(self, db, claims, make_file):
        file = make_file()

        assert claims.claim(file.id)
        result = claims.claim(file.id)

        assert not result
        assert result.error == ErrorCode.CLAIM_CONFLICT

    def test_two_workers_race(self, db, clock, make_file):
        """Both workers see the candidate; exactly one claim succeeds."""
        file = make_file(last_access_at=clock() - timedelta(days=31))
        worker_a = (MigrationSelector(db, clock), MigrationClaims(db, clock))
        worker_b = (MigrationSelector(db, clock), MigrationClaims(db, clock))

        seen_a = ids(worker_a[0].cold_candidates(30))
        seen_b = ids(worker_b[0].cold_candidates(30))
        assert seen_a == seen_b == [file.id]

        results = [worker_a[1].claim(file.id), worker_b[1].claim(file.id)]

        assert [r.ok for r in results] == [True, False]
        assert results[1].error == ErrorCode.CLAIM_CONFLICT
        assert self.status(db, file.id) == MigrationStatus.PENDING

    def test_claim_requires_source_tier(self, db, claims, make_file):
        file = make_file(storage_tier=StorageTier.COLD)

        assert not claims.claim(file.id, from_tier=StorageTier.HOT)
        assert claims.claim(file.id, from_tier=StorageTier.COLD)

    def test_claim_deleted_file_conflicts(self, claims, make_file):
        file = make_file(is_deleted=True)

        assert claims.claim(file.id).error == ErrorCode.CLAIM_CONFLICT

    def test_full_cycle(self, db, claims, make_file, clock):
        file = make_file()

        assert claims.claim(file.id)
        assert claims.start(file.id)
        assert self.status(db, file.id) == MigrationStatus.IN_PROGRESS
        assert claims.mark_completed(file.id, StorageTier.COLD)

        stored = db.get(File, file.id)
        assert stored.migration_status == MigrationStatus.COMPLETED
        assert stored.storage_tier == StorageTier.COLD
        assert stored.last_migration_at == clock()

    def test_completed_can_be_claimed_again(self, claims, make_file):
        file = make_file(migration_status=MigrationStatus.COMPLETED)

        assert claims.claim(file.id)

    def test_start_requires_pending(self, claims, make_file):
        file = make_file()

        assert not claims.start(file.id)

    def test_complete_requires_in_progress(self, claims, make_file):
        file = make_file()
        claims.claim(file.id)

        assert not claims.mark_completed(file.id, StorageTier.COLD)

    def test_failed_then_reset(self, db, claims, make_file):
        file = make_file()
        claims.claim(file.id)
        claims.start(file.id)

        assert claims.mark_failed(file.id)
        assert self.status(db, file.id) == MigrationStatus.FAILED
        assert claims.reset_failed(file.id)
        assert self.status(db, file.id) == MigrationStatus.NONE

    def test_failed_is_claimable(self, claims, make_file):
        file = make_file(migration_status=MigrationStatus.FAILED)

        assert claims.claim(file.id)

    def test_mark_failed_requires_active(self, claims, make_file):
        file = make_file(migration_status=MigrationStatus.COMPLETED)

        assert not claims.mark_failed(file.id)

    def test_reset_requires_failed(self, claims, make_file):
        file = make_file()

        assert not claims.reset_failed(file.id)

    def test_revert_stale(self, db, claims, make_file, clock):
        stuck = make_file()
        fresh = make_file()
        pending = make_file()
        claims.claim(stuck.id)
        claims.start(stuck.id)
        claims.claim(pending.id)
        clock.advance(minutes=90)
        claims.claim(fresh.id)
        claims.start(fresh.id)

        assert claims.revert_stale(timedelta(minutes=60)) == 2
        assert self.status(db, stuck.id) == MigrationStatus.FAILED
        assert self.status(db, pending.id) == MigrationStatus.FAILED
        assert self.status(db, fresh.id) == MigrationStatus.IN_PROGRESS

    def test_stale_pending_claim_is_recoverable(self, db, claims, make_file, clock):
        """A worker that died between claim and start leaves PENDING behind."""
        file = make_file()
        claims.claim(file.id)
        clock.advance(minutes=61)

        assert claims.revert_stale(timedelta(minutes=60)) == 1
        assert self.status(db, file.id) == MigrationStatus.FAILED
        assert claims.claim(file.id, from_tier=StorageTier.HOT)

    def test_complete_reverted(self, db, claims, make_file):
        file = make_file(migration_status=MigrationStatus.FAILED)

        assert claims.complete_reverted(file.id, StorageTier.COLD)

        stored = db.get(File, file.id)
        assert stored.migration_status == MigrationStatus.COMPLETED
        assert stored.storage_tier == StorageTier.COLD

    def test_complete_reverted_requires_source_tier(self, claims, make_file):
        file = make_file(storage_tier=StorageTier.COLD, migration_status=MigrationStatus.FAILED)

        assert not claims.complete_reverted(file.id, StorageTier.COLD)

    def test_complete_reverted_leaves_new_claims_alone(self, claims, make_file):
        file = make_file(migration_status=MigrationStatus.PENDING)

        assert not claims.complete_reverted(file.id, StorageTier.COLD)


@pytest.mark.unit
class TestClaimOwnership:
    """Test owner-scoped transitions"""

    def test_claim_stamps_owner(self, db, clock, make_file):
        file = make_file()

        assert MigrationClaims(db, clock, owner="worker-a").claim(file.id)

        db.expire_all()
        assert db.get(File, file.id).migration_claimed_by == "worker-a"

    def test_other_owner_cannot_fail_claim(self, db, clock, make_file):
        file = make_file()
        worker_a = MigrationClaims(db, clock, owner="worker-a")
        worker_b = MigrationClaims(db, clock, owner="worker-b")
        assert worker_b.claim(file.id)

        assert not worker_a.mark_failed(file.id)
        assert worker_b.start(file.id)
        assert worker_b.mark_completed(file.id, StorageTier.COLD)

    def test_other_owner_cannot_start_or_complete(self, db, clock, make_file):
        file = make_file()
        worker_a = MigrationClaims(db, clock, owner="worker-a")
        worker_b = MigrationClaims(db, clock, owner="worker-b")
        assert worker_a.claim(file.id)

        assert not worker_b.start(file.id)
        assert worker_a.start(file.id)
        assert not worker_b.mark_completed(file.id, StorageTier.COLD)
        assert worker_a.mark_completed(file.id, StorageTier.COLD)
