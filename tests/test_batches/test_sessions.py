"""
Tests for the import session lifecycle.
"""

import pytest

from legacy_import.batches import sessions
from legacy_import.errors import BadRequestError
from legacy_import.models.enums import SessionStatus


class TestAdvanceSessionStatus:

    async def test_moves_forward(self, db, build):
        import_session = await build.session(status=SessionStatus.IN_PROGRESS.value)
        updated = await sessions.advance_session_status(db, import_session.id, "Completed")
        assert updated.status == "Completed"
        assert updated.exported_at is None

    async def test_backwards_rejected(self, db, build):
        import_session = await build.session(status=SessionStatus.COMPLETED.value)
        with pytest.raises(BadRequestError) as exc:
            await sessions.advance_session_status(db, import_session.id, "InProgress")
        assert exc.value.error_code == "ERR_STATUS_BACKWARDS"
        assert import_session.status == "Completed"

    async def test_same_status_is_noop(self, db, build):
        import_session = await build.session(status=SessionStatus.COMPLETED.value)
        updated = await sessions.advance_session_status(db, import_session.id, "Completed")
        assert updated.status == "Completed"

    async def test_export_is_stamped(self, db, build):
        import_session = await build.session(status=SessionStatus.COMPLETED.value)
        updated = await sessions.advance_session_status(db, import_session.id, SessionStatus.EXPORTED)
        assert updated.status == "Exported"
        assert updated.exported_at is not None

    async def test_unknown_status(self, db, build):
        import_session = await build.session()
        with pytest.raises(BadRequestError):
            await sessions.advance_session_status(db, import_session.id, "Archived")


class TestExtractionErrors:

    async def test_errors_accumulate(self, db, build):
        import_session = await build.session()
        await sessions.record_extraction_error(db, import_session.id, {"file_name": "a.msg", "error": "corrupt"})
        updated = await sessions.record_extraction_error(db, import_session.id, {"file_name": "b.pdf", "error": "encrypted"})

        assert [e["file_name"] for e in updated.extraction_errors] == ["a.msg", "b.pdf"]
        assert "recorded_at" in updated.extraction_errors[0]
