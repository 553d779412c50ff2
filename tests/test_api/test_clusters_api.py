"""
Tests for the clustering and cluster validation endpoints.
"""

import pytest

from legacy_import.models.enums import ClusterStatus, PipelineStatus, ValidationStatus


@pytest.fixture
async def review(db, build):
    import_session = await build.session(pipeline_status=PipelineStatus.READY_FOR_VALIDATION.value)
    approved = await build.cluster(import_session, "Contracte", members=6, status=ClusterStatus.APPROVED.value)
    pending = await build.cluster(import_session, "Facturi", members=2)
    await db.commit()
    return import_session, approved, pending


class TestClusterListing:

    async def test_lists_live_clusters(self, client, review, partner_headers):
        import_session, approved, pending = review
        response = await client.get(f"/api/v1/sessions/{import_session.id}/clusters", headers=partner_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["pipeline_status"] == PipelineStatus.READY_FOR_VALIDATION.value
        assert [c["id"] for c in body["clusters"]] == [str(approved.id), str(pending.id)]

    async def test_partner_only(self, client, review, paralegal_headers):
        response = await client.get(f"/api/v1/sessions/{review[0].id}/clusters", headers=paralegal_headers)
        assert response.status_code == 403


class TestClusterActionEndpoint:

    async def test_approving_last_pending_triggers_once(self, client, db, review, partner_headers, dispatcher):
        import_session, _, pending = review
        url = f"/api/v1/clusters/{pending.id}/action"

        first = await client.post(url, json={"action": "approve"}, headers=partner_headers)
        assert first.status_code == 200
        assert first.json()["extraction_triggered"] is True
        assert first.json()["status"] == "Approved"

        again = await client.post(url, json={"action": "reject"}, headers=partner_headers)
        assert again.json()["extraction_triggered"] is False
        assert dispatcher.submitted == [import_session.id]

        await db.refresh(import_session)
        assert import_session.pipeline_status == PipelineStatus.EXTRACTING.value

    async def test_unknown_action(self, client, review, partner_headers):
        response = await client.post(
            f"/api/v1/clusters/{review[2].id}/action", json={"action": "archive"}, headers=partner_headers
        )
        assert response.status_code == 400

    async def test_delete(self, client, review, partner_headers):
        import_session, _, pending = review
        response = await client.post(
            f"/api/v1/clusters/{pending.id}/action", json={"action": "delete"}, headers=partner_headers
        )
        assert response.status_code == 200
        assert response.json()["status"] is None

        listed = await client.get(
            f"/api/v1/sessions/{import_session.id}/clusters",
            params={"include_deleted": "true"},
            headers=partner_headers,
        )
        deleted = [c for c in listed.json()["clusters"] if c["id"] == str(pending.id)]
        assert deleted[0]["is_deleted"] is True


class TestMergeEndpoint:

    async def test_merge(self, client, db, build, partner_headers):
        import_session = await build.session()
        first = await build.cluster(import_session, "Contract", members=4)
        second = await build.cluster(import_session, "Contracte", members=7, status=ClusterStatus.APPROVED.value)
        await db.commit()

        response = await client.post(
            "/api/v1/clusters/merge",
            json={"cluster_ids": [str(first.id), str(second.id)], "new_name": "Contracts"},
            headers=partner_headers,
        )

        assert response.status_code == 200
        assert response.json()["document_count"] == 11

        listed = await client.get(f"/api/v1/sessions/{import_session.id}/clusters", headers=partner_headers)
        clusters = listed.json()["clusters"]
        assert len(clusters) == 1
        assert clusters[0]["status"] == ClusterStatus.PENDING.value
        assert clusters[0]["suggested_name"] == "Contracts"

    async def test_single_id_rejected(self, client, review, partner_headers):
        response = await client.post(
            "/api/v1/clusters/merge",
            json={"cluster_ids": [str(review[1].id)], "new_name": "X"},
            headers=partner_headers,
        )
        assert response.status_code == 400


class TestDocumentEndpoints:

    async def test_reclassify_without_note(self, client, review, partner_headers):
        _, _, pending = review
        listing = await client.get(f"/api/v1/clusters/{pending.id}/documents", headers=partner_headers)
        document_id = listing.json()["documents"][0]["id"]

        response = await client.put(
            f"/api/v1/clusters/{pending.id}/documents/{document_id}",
            json={"action": "reclassify", "reclassification_note": ""},
            headers=partner_headers,
        )
        assert response.status_code == 422
        assert response.json()["error"] == "ERR_NOTE_REQUIRED"

        after = await client.get(f"/api/v1/clusters/{pending.id}/documents", headers=partner_headers)
        statuses = {d["id"]: d["validation_status"] for d in after.json()["documents"]}
        assert statuses[document_id] == ValidationStatus.PENDING.value

    async def test_bulk_accept(self, client, review, partner_headers):
        _, approved, _ = review
        listing = await client.get(
            f"/api/v1/clusters/{approved.id}/documents", params={"limit": 3}, headers=partner_headers
        )
        assert listing.json()["total"] == 6
        ids = [d["id"] for d in listing.json()["documents"]]

        response = await client.post(
            f"/api/v1/clusters/{approved.id}/documents",
            json={"document_ids": ids, "action": "accept"},
            headers=partner_headers,
        )
        assert response.json() == {"success": True, "updated": 3}

        accepted = await client.get(
            f"/api/v1/clusters/{approved.id}/documents",
            params={"validation_status": "Accepted"},
            headers=partner_headers,
        )
        assert accepted.json()["total"] == 3

    async def test_clustering_run(self, client, db, build, partner_headers):
        import_session = await build.session()
        await build.document(import_session, text="notificare executare")
        await db.commit()

        response = await client.post(
            f"/api/v1/sessions/{import_session.id}/clusters/run", headers=partner_headers
        )
        assert response.status_code == 200
        assert response.json()["needs_review_documents"] == 1

        again = await client.post(
            f"/api/v1/sessions/{import_session.id}/clusters/run", headers=partner_headers
        )
        assert again.status_code == 400
