import uuid


def _submit(client, headers, org_id, **extra):
    body = {
        "variant": "letter",
        "origin_org_id": str(org_id),
        "subject": "Hall booking",
        "payload": {"body": "Requesting the main hall"},
    }
    body.update(extra)
    doc = client.post("/workflow/documents", json=body, headers=headers).json()
    client.post(f"/workflow/documents/{doc['id']}/submit", headers=headers)
    return doc["id"]


class TestMailboxEndpoints:
    def test_inbox_and_archive(
        self, client, actor_headers, author, org_reviewer, org_x, org_y
    ):
        a, r = actor_headers(author), actor_headers(org_reviewer)
        doc_id = _submit(client, a, org_x, target_org_id=str(org_y))

        inbox = client.get("/workflow/mailbox/inbox", headers=r).json()
        assert [d["id"] for d in inbox["items"]] == [doc_id]
        assert inbox["total"] == 1

        client.post(
            f"/workflow/documents/{doc_id}/reject",
            json={"note": "wrong format"},
            headers=r,
        )
        for headers in (a, r):
            inbox = client.get("/workflow/mailbox/inbox", headers=headers).json()
            archive = client.get("/workflow/mailbox/archive", headers=headers).json()
            assert inbox["total"] == 0
            assert [d["id"] for d in archive["items"]] == [doc_id]

    def test_outbox(self, client, actor_headers, author, org_x):
        a = actor_headers(author)
        _submit(client, a, org_x)
        resp = client.get(f"/workflow/mailbox/outbox?org_id={org_x}", headers=a)
        assert resp.status_code == 200
        data = resp.json()
        assert data["total"] == 1
        assert data["limit"] == 25
        assert data["offset"] == 0

    def test_outbox_requires_org(self, client, actor_headers, author):
        resp = client.get("/workflow/mailbox/outbox", headers=actor_headers(author))
        assert resp.status_code == 422

    def test_outbox_of_other_org(self, client, actor_headers, outsider, org_x):
        resp = client.get(
            f"/workflow/mailbox/outbox?org_id={org_x}", headers=actor_headers(outsider)
        )
        assert resp.status_code == 403

    def test_search_and_pagination(self, client, actor_headers, author, reviewer, org_x):
        a = actor_headers(author)
        for subject in ("Hall booking", "Hall cleaning", "Bus rental"):
            _submit(client, a, org_x, subject=subject)
        resp = client.get(
            "/workflow/mailbox/inbox?q=hall&limit=1", headers=actor_headers(reviewer)
        )
        data = resp.json()
        assert data["total"] == 2
        assert len(data["items"]) == 1

    def test_unknown_kind(self, client, actor_headers, reviewer):
        resp = client.get("/workflow/mailbox/drafts", headers=actor_headers(reviewer))
        assert resp.status_code == 422

    def test_actor_without_roles(self, client):
        resp = client.get(
            "/workflow/mailbox/inbox", headers={"X-Actor-Id": str(uuid.uuid4())}
        )
        assert resp.status_code == 403
