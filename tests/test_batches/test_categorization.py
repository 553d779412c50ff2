"""
Tests for document categorization and category management.
"""

import uuid

import pytest
from sqlalchemy import select

from legacy_import.batches import categorization
from legacy_import.errors import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from legacy_import.models.enums import AuditAction, CategorizationStatus
from legacy_import.models.tables import ImportAuditLog, ImportCategory


@pytest.fixture
async def workspace(build):
    """A session with one two-document batch owned by paralegal-1."""
    import_session = await build.session(total_documents=2)
    batch = await build.batch(import_session, "2024-01", assigned_to="paralegal-1", document_count=2)
    first = await build.document(import_session, batch=batch)
    second = await build.document(import_session, batch=batch)
    return import_session, batch, first, second


class TestCreateCategory:

    async def test_trims_name(self, db, build):
        import_session = await build.session()
        category = await categorization.create_category(db, import_session.id, "  Contracte  ", "p1")
        assert category.name == "Contracte"
        assert category.document_count == 0

    async def test_same_name_returns_existing(self, db, build):
        import_session = await build.session()
        first = await categorization.create_category(db, import_session.id, "Facturi", "p1")
        again = await categorization.create_category(db, import_session.id, "Facturi ", "p2")
        assert again.id == first.id

    async def test_blank_name_rejected(self, db, build):
        import_session = await build.session()
        with pytest.raises(BadRequestError) as exc:
            await categorization.create_category(db, import_session.id, "   ", "p1")
        assert exc.value.error_code == "ERR_EMPTY_CATEGORY_NAME"

    def test_similar_names_grouped(self):
        categories = [
            ImportCategory(name="Contracte"),
            ImportCategory(name="contracte"),
            ImportCategory(name="Facturi"),
            ImportCategory(name="Somatii  plata"),
            ImportCategory(name="somatii plata"),
        ]
        groups = categorization.find_similar_categories(categories)
        assert sorted(sorted(c.name for c in g) for g in groups) == [
            ["Contracte", "contracte"],
            ["Somatii  plata", "somatii plata"],
        ]


class TestCategorizeDocument:

    async def test_categorize_updates_counts(self, db, workspace):
        import_session, batch, first, _ = workspace
        category = await categorization.create_category(db, import_session.id, "Contracte", "p1")

        document = await categorization.categorize_document(db, first.id, "paralegal-1", category.id)

        assert document.status == CategorizationStatus.CATEGORIZED.value
        assert document.categorized_by == "paralegal-1"
        assert batch.categorized_count == 1
        assert import_session.categorized_count == 1
        assert category.document_count == 1
        assert batch.completed_at is None

    async def test_skip_then_complete_once(self, db, workspace):
        import_session, batch, first, second = workspace
        category = await categorization.create_category(db, import_session.id, "Contracte", "p1")

        await categorization.categorize_document(db, first.id, "paralegal-1", skip=True)
        await categorization.categorize_document(db, second.id, "paralegal-1", category.id)

        assert (batch.categorized_count, batch.skipped_count) == (1, 1)
        stamped = batch.completed_at
        assert stamped is not None

        # Re-categorizing inside a complete batch keeps the counters bounded
        await categorization.categorize_document(db, first.id, "paralegal-1", category.id)
        assert (batch.categorized_count, batch.skipped_count) == (2, 0)
        assert batch.categorized_count + batch.skipped_count <= batch.document_count
        assert batch.completed_at == stamped

    async def test_recategorize_moves_category_count(self, db, workspace):
        import_session, batch, first, _ = workspace
        old = await categorization.create_category(db, import_session.id, "Contracte", "p1")
        new = await categorization.create_category(db, import_session.id, "Facturi", "p1")

        await categorization.categorize_document(db, first.id, "paralegal-1", old.id)
        await categorization.categorize_document(db, first.id, "paralegal-1", new.id)

        assert (old.document_count, new.document_count) == (0, 1)
        assert batch.categorized_count == 1

    async def test_only_batch_owner(self, db, workspace):
        import_session, _, first, _ = workspace
        with pytest.raises(ForbiddenError):
            await categorization.categorize_document(db, first.id, "someone-else", skip=True)

    async def test_category_required_unless_skipping(self, db, workspace):
        first = workspace[2]
        with pytest.raises(BadRequestError):
            await categorization.categorize_document(db, first.id, "paralegal-1")

    async def test_unbatched_document(self, db, build):
        import_session = await build.session()
        loose = await build.document(import_session)
        with pytest.raises(BadRequestError):
            await categorization.categorize_document(db, loose.id, "paralegal-1", skip=True)

    async def test_unknown_document(self, db):
        with pytest.raises(NotFoundError):
            await categorization.categorize_document(db, uuid.uuid4(), "paralegal-1", skip=True)

    async def test_overflowing_batch_rejected(self, db, build):
        import_session = await build.session()
        batch = await build.batch(
            import_session, "2024-01", assigned_to="paralegal-1", document_count=1, skipped_count=1
        )
        extra = await build.document(import_session, batch=batch)

        with pytest.raises(ConflictError):
            await categorization.categorize_document(db, extra.id, "paralegal-1", skip=True)
        assert batch.skipped_count == 1

    async def test_merged_category_cannot_be_used(self, db, workspace):
        import_session, _, first, _ = workspace
        keep = await categorization.create_category(db, import_session.id, "Contracte", "p1")
        gone = await categorization.create_category(db, import_session.id, "contracte", "p1")
        await categorization.merge_categories(db, import_session.id, keep.id, [gone.id], "partner-1")

        with pytest.raises(BadRequestError) as exc:
            await categorization.categorize_document(db, first.id, "paralegal-1", gone.id)
        assert exc.value.error_code == "ERR_CATEGORY_MERGED"


class TestMergeCategories:

    async def test_merge_moves_documents_and_counts(self, db, workspace):
        import_session, _, first, second = workspace
        keep = await categorization.create_category(db, import_session.id, "Contracte", "p1")
        gone = await categorization.create_category(db, import_session.id, "Contract", "p1")
        await categorization.categorize_document(db, first.id, "paralegal-1", keep.id)
        await categorization.categorize_document(db, second.id, "paralegal-1", gone.id)

        target = await categorization.merge_categories(
            db, import_session.id, keep.id, [gone.id], "partner-1"
        )

        assert target.document_count == 2
        assert gone.merged_into == keep.id
        assert gone.document_count == 0
        await db.refresh(second)
        assert second.category_id == keep.id

        listed = await categorization.list_categories(db, import_session.id)
        assert [c.name for c in listed] == ["Contracte"]

        audit = await db.execute(
            select(ImportAuditLog).where(ImportAuditLog.action == AuditAction.CATEGORIES_MERGED.value)
        )
        assert audit.scalar_one().details["source_ids"] == [str(gone.id)]

    async def test_merge_needs_a_distinct_source(self, db, build):
        import_session = await build.session()
        keep = await categorization.create_category(db, import_session.id, "Contracte", "p1")
        with pytest.raises(BadRequestError):
            await categorization.merge_categories(db, import_session.id, keep.id, [keep.id], "partner-1")

    async def test_merge_unknown_source(self, db, build):
        import_session = await build.session()
        keep = await categorization.create_category(db, import_session.id, "Contracte", "p1")
        with pytest.raises(BadRequestError):
            await categorization.merge_categories(
                db, import_session.id, keep.id, [uuid.uuid4()], "partner-1"
            )

    async def test_list_orders_by_usage(self, db, workspace):
        import_session, _, first, _ = workspace
        await categorization.create_category(db, import_session.id, "Alpha", "p1")
        busy = await categorization.create_category(db, import_session.id, "Zeta", "p1")
        await categorization.categorize_document(db, first.id, "paralegal-1", busy.id)

        listed = await categorization.list_categories(db, import_session.id)
        assert [c.name for c in listed] == ["Zeta", "Alpha"]
