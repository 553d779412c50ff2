"""
Tests for batch creation, completion stamping and progress reporting.
"""

import uuid
from datetime import datetime, timezone

from legacy_import.batches import progress
from legacy_import.models.enums import CategorizationStatus, SessionStatus


def _date(year, month, day=10):
    return datetime(year, month, day, 9, 30, tzinfo=timezone.utc)


class TestCreateBatches:

    async def test_groups_documents_by_month(self, db, build):
        import_session = await build.session(status=SessionStatus.EXTRACTING.value)
        for day in (2, 15, 28):
            await build.document(import_session, email_date=_date(2024, 1, day))
        await build.document(import_session, email_date=_date(2024, 3))
        await build.document(import_session, email_date=None)

        batches = await progress.create_batches_for_session(db, import_session.id)

        assert [(b.month_year, b.document_count) for b in batches] == [
            ("2024-01", 3),
            ("2024-03", 1),
            ("undated", 1),
        ]
        assert import_session.total_documents == 5
        assert import_session.status == SessionStatus.IN_PROGRESS.value

    async def test_new_documents_join_existing_batch(self, db, build):
        import_session = await build.session()
        await build.document(import_session, email_date=_date(2024, 5))
        await progress.create_batches_for_session(db, import_session.id)

        await build.document(
            import_session, email_date=_date(2024, 5, 20), status=CategorizationStatus.SKIPPED.value
        )
        batches = await progress.create_batches_for_session(db, import_session.id)

        assert len(batches) == 1
        assert batches[0].document_count == 2
        assert batches[0].skipped_count == 1


class TestBatchCompletion:

    async def test_stamps_completed_at_once(self, db, build):
        import_session = await build.session()
        batch = await build.batch(import_session, "2024-01", document_count=2, categorized_count=1, skipped_count=1)

        assert await progress.check_and_mark_batch_complete(db, batch.id) is True
        first = batch.completed_at
        assert first is not None

        assert await progress.check_and_mark_batch_complete(db, batch.id) is True
        assert batch.completed_at == first

    async def test_incomplete_batch(self, db, build):
        import_session = await build.session()
        batch = await build.batch(import_session, "2024-01", document_count=3, categorized_count=1)
        assert await progress.check_and_mark_batch_complete(db, batch.id) is False
        assert batch.completed_at is None

    async def test_unknown_batch(self, db):
        assert await progress.check_and_mark_batch_complete(db, uuid.uuid4()) is False

    async def test_update_batch_stats_recounts(self, db, build):
        import_session = await build.session()
        batch = await build.batch(import_session, "2024-01", document_count=2)
        await build.document(import_session, batch=batch, status=CategorizationStatus.CATEGORIZED.value)
        await build.document(import_session, batch=batch, status=CategorizationStatus.SKIPPED.value)

        refreshed = await progress.update_batch_stats(db, batch.id)
        assert (refreshed.categorized_count, refreshed.skipped_count) == (1, 1)
        assert refreshed.completed_at is not None


class TestProgressReporting:

    async def test_session_progress(self, db, build):
        import_session = await build.session(total_documents=8, categorized_count=3, skipped_count=1)
        await build.batch(import_session, "2024-01", assigned_to="A", document_count=4, categorized_count=3, skipped_count=1)
        await build.batch(import_session, "2024-02", document_count=4)

        report = await progress.get_session_progress(db, import_session.id)

        assert report.progress == 50.0
        assert report.remaining_count == 4
        assert report.batch_count == 2
        assert report.assigned_batch_count == 1
        assert report.completed_batch_count == 1

    async def test_empty_session_reports_zero(self, db, build):
        import_session = await build.session()
        report = await progress.get_session_progress(db, import_session.id)
        assert report.progress == 0
        assert report.remaining_count == 0

    async def test_session_stats_recount(self, db, build):
        import_session = await build.session()
        await build.document(import_session, status=CategorizationStatus.CATEGORIZED.value)
        await build.document(import_session, status=CategorizationStatus.CATEGORIZED.value)
        await build.document(import_session, status=CategorizationStatus.SKIPPED.value)

        await progress.update_session_stats(db, import_session.id)
        assert import_session.categorized_count == 2
        assert import_session.skipped_count == 1

    async def test_user_summary(self, db, build):
        import_session = await build.session()
        await build.batch(import_session, "2024-01", assigned_to="A", document_count=5, categorized_count=2)
        await build.batch(import_session, "2024-02", assigned_to="A", document_count=5, skipped_count=1)
        await build.batch(import_session, "2024-03", assigned_to="B", document_count=3)
        await build.batch(import_session, "2024-04")

        status = await progress.get_all_batches_status(db, import_session.id)
        summary = {s.user_id: s for s in status.user_summary}

        assert len(status.batches) == 4
        assert (summary["A"].batch_count, summary["A"].total_docs, summary["A"].completed) == (2, 10, 3)
        assert summary["B"].completed == 0

        mine = await progress.get_all_batches_status(db, import_session.id, user_id="B")
        assert [b.month_year for b in mine.batches] == ["2024-03"]
