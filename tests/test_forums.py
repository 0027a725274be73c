"""Tests for forum routes and membership counting."""

import pytest


@pytest.fixture
def creator(make_user):
    return make_user("creator")


@pytest.fixture
def forum(client, creator, auth):
    response = client.post(
        "/api/forums/", data={"name": "Book Club", "description": "Reading", "is_coi": "true"}, headers=auth(creator)
    )
    assert response.status_code == 201, response.text
    return response.json()


def members_count(fetch_one, forum_id):
    return fetch_one("SELECT members_count FROM forums WHERE id = ?", (forum_id,))["members_count"]


def approved_rows(count_rows, forum_id):
    return count_rows("SELECT COUNT(*) FROM forum_members WHERE forum_id = ? AND is_approved = 1", (forum_id,))


class TestCreateForum:
    def test_creator_is_core_member(self, forum, creator, fetch_one):
        assert forum["name"] == "Book Club"
        assert forum["is_coi"] is True
        assert forum["members_count"] == 1
        membership = fetch_one(
            "SELECT role, is_approved FROM forum_members WHERE forum_id = ? AND user_id = ?",
            (forum["id"], creator),
        )
        assert membership == {"role": "core", "is_approved": True}

    def test_uploads_images(self, client, creator, auth, storage):
        response = client.post(
            "/api/forums/",
            data={"name": "Pics", "is_coi": "true"},
            files={"avatar": ("a.png", b"a", "image/png"), "cover": ("c.png", b"c", "image/png")},
            headers=auth(creator),
        )
        body = response.json()
        assert body["avatar_url"].endswith("_a.png")
        assert body["cover_url"].endswith("_c.png")
        assert [bucket for bucket, _, _ in storage.uploaded] == ["forum-media", "forum-media"]

    def test_database_stays_writable_during_upload(self, client, creator, make_user, auth, storage, fetch_one):
        written = []
        storage.on_upload = lambda bucket, path: written.append(make_user())
        response = client.post(
            "/api/forums/",
            data={"name": "Pics", "is_coi": "true"},
            files={"avatar": ("a.png", b"a", "image/png")},
            headers=auth(creator),
        )
        assert response.status_code == 201, response.text
        assert response.json()["avatar_url"].endswith("_a.png")
        assert response.json()["members_count"] == 1
        assert fetch_one("SELECT id FROM users WHERE id = ?", (written[0],)) == {"id": written[0]}

    def test_only_admin_creates_non_coi_forum(self, client, creator, make_user, auth):
        response = client.post("/api/forums/", data={"name": "Bidang"}, headers=auth(creator))
        assert response.status_code == 403
        assert response.json() == {"message": "Only admins are allowed to create Bidang forums."}

        admin = make_user("admin", admin=True)
        response = client.post("/api/forums/", data={"name": "Bidang"}, headers=auth(admin))
        assert response.status_code == 201
        assert response.json()["is_coi"] is False

    def test_name_required(self, client, creator, auth):
        response = client.post("/api/forums/", data={"is_coi": "true"}, headers=auth(creator))
        assert response.status_code == 400
        assert response.json() == {"message": "Forum name is required."}


class TestReadForums:
    def test_list_and_filter(self, client, forum, make_user, auth):
        admin = make_user("admin", admin=True)
        client.post("/api/forums/", data={"name": "Bidang"}, headers=auth(admin))
        body = client.get("/api/forums/", headers=auth(admin)).json()
        assert body["total"] == 2
        coi = client.get("/api/forums/", params={"is_coi": "true"}, headers=auth(admin)).json()
        assert [f["name"] for f in coi["forums"]] == ["Book Club"]

    def test_detail_membership_status(self, client, forum, creator, make_user, auth):
        own = client.get(f"/api/forums/{forum['id']}", headers=auth(creator)).json()
        assert own["membership_status"] == "approved"
        assert own["is_core_member"] is True
        assert own["creator"]["username"] == "creator"

        visitor = make_user("visitor")
        assert client.get(f"/api/forums/{forum['id']}", headers=auth(visitor)).json()["membership_status"] == "none"
        client.post(f"/api/forums/{forum['id']}/join", headers=auth(visitor))
        pending = client.get(f"/api/forums/{forum['id']}", headers=auth(visitor)).json()
        assert pending["membership_status"] == "pending"
        assert pending["is_following"] is False

    def test_missing_forum(self, client, creator, auth):
        response = client.get("/api/forums/999", headers=auth(creator))
        assert response.status_code == 404
        assert response.json() == {"message": "Forum not found."}

    def test_joined_lists_only_approved(self, client, forum, creator, make_user, auth):
        visitor = make_user("visitor")
        client.post(f"/api/forums/{forum['id']}/join", headers=auth(visitor))
        assert client.get("/api/forums/joined", headers=auth(visitor)).json()["total"] == 0

        joined = client.get("/api/forums/joined", headers=auth(creator)).json()
        assert joined["total"] == 1
        assert joined["forums"][0]["role"] == "core"
        members = client.get("/api/forums/joined", params={"role": "member"}, headers=auth(creator)).json()
        assert members["total"] == 0

    def test_joined_rejects_unknown_role(self, client, creator, auth):
        response = client.get("/api/forums/joined", params={"role": "owner"}, headers=auth(creator))
        assert response.status_code == 400


class TestMembership:
    def test_join_approve_leave_keeps_count_in_sync(self, client, forum, creator, make_user, auth, fetch_one, count_rows):
        joiner = make_user("joiner")
        response = client.post(f"/api/forums/{forum['id']}/join", headers=auth(joiner))
        assert response.status_code == 201
        assert response.json() == {"message": "Join request sent. Please wait for approval."}
        # Pending requests are not counted
        assert members_count(fetch_one, forum["id"]) == 1

        requests = client.get(f"/api/forums/{forum['id']}/requests", headers=auth(creator)).json()
        assert [r["user"]["id"] for r in requests] == [joiner]

        response = client.put(
            f"/api/forums/{forum['id']}/approve", json={"user_id": joiner}, headers=auth(creator)
        )
        assert response.status_code == 200
        assert members_count(fetch_one, forum["id"]) == 2 == approved_rows(count_rows, forum["id"])

        response = client.post(f"/api/forums/{forum['id']}/leave", headers=auth(joiner))
        assert response.json() == {"message": "You have left the forum."}
        assert members_count(fetch_one, forum["id"]) == 1 == approved_rows(count_rows, forum["id"])

    def test_duplicate_join(self, client, forum, creator, make_user, auth):
        joiner = make_user("joiner")
        client.post(f"/api/forums/{forum['id']}/join", headers=auth(joiner))
        again = client.post(f"/api/forums/{forum['id']}/join", headers=auth(joiner))
        assert again.status_code == 400
        assert again.json() == {"message": "You have already requested to join this forum. Please wait for approval."}

        member = client.post(f"/api/forums/{forum['id']}/join", headers=auth(creator))
        assert member.status_code == 400
        assert member.json() == {"message": "You are already a member of this forum."}

    def test_cancel_pending_request(self, client, forum, make_user, auth, fetch_one):
        joiner = make_user("joiner")
        client.post(f"/api/forums/{forum['id']}/join", headers=auth(joiner))
        response = client.post(f"/api/forums/{forum['id']}/leave", headers=auth(joiner))
        assert response.json() == {"message": "Join request cancelled."}
        assert members_count(fetch_one, forum["id"]) == 1

    def test_creator_cannot_leave(self, client, forum, creator, auth):
        response = client.post(f"/api/forums/{forum['id']}/leave", headers=auth(creator))
        assert response.status_code == 400
        assert response.json() == {"message": "Forum creator cannot leave the forum."}

    def test_leave_without_membership(self, client, forum, make_user, auth):
        response = client.post(f"/api/forums/{forum['id']}/leave", headers=auth(make_user("stranger")))
        assert response.status_code == 400
        assert response.json() == {"message": "You are not a member of this forum."}

    def test_only_core_members_approve(self, client, forum, make_user, auth):
        joiner = make_user("joiner")
        other = make_user("other")
        client.post(f"/api/forums/{forum['id']}/join", headers=auth(joiner))
        response = client.put(f"/api/forums/{forum['id']}/approve", json={"user_id": joiner}, headers=auth(other))
        assert response.status_code == 403
        assert response.json() == {"message": "Only core members can approve join requests."}

    def test_approve_errors(self, client, forum, creator, make_user, auth):
        url = f"/api/forums/{forum['id']}/approve"
        assert client.put(url, json={}, headers=auth(creator)).status_code == 400
        missing = client.put(url, json={"user_id": make_user("nobody")}, headers=auth(creator))
        assert missing.status_code == 404
        assert missing.json() == {"message": "No join request found for this user."}
        already = client.put(url, json={"user_id": creator}, headers=auth(creator))
        assert already.status_code == 400

    def test_requests_hidden_from_members(self, client, forum, make_user, auth):
        response = client.get(f"/api/forums/{forum['id']}/requests", headers=auth(make_user("member")))
        assert response.status_code == 403


class TestEditForum:
    def test_core_member_edits(self, client, forum, creator, auth):
        response = client.put(f"/api/forums/{forum['id']}", data={"name": "Book Club 2"}, headers=auth(creator))
        assert response.status_code == 200
        assert response.json()["name"] == "Book Club 2"

    def test_category_change_requires_admin(self, client, forum, creator, make_user, auth):
        response = client.put(f"/api/forums/{forum['id']}", data={"is_coi": "false"}, headers=auth(creator))
        assert response.status_code == 403
        admin = make_user("admin", admin=True)
        response = client.put(f"/api/forums/{forum['id']}", data={"is_coi": "false"}, headers=auth(admin))
        assert response.status_code == 200
        assert response.json()["is_coi"] is False

    def test_outsider_cannot_edit(self, client, forum, make_user, auth):
        response = client.put(f"/api/forums/{forum['id']}", data={"name": "Mine"}, headers=auth(make_user("x")))
        assert response.status_code == 403
        assert response.json() == {"message": "You are not authorized to edit this forum."}

    def test_empty_update(self, client, forum, creator, auth):
        response = client.put(f"/api/forums/{forum['id']}", data={}, headers=auth(creator))
        assert response.status_code == 400
        assert response.json() == {"message": "No fields provided for update."}

    def test_new_avatar_replaces_old(self, client, creator, auth, storage):
        created = client.post(
            "/api/forums/",
            data={"name": "Pics", "is_coi": "true"},
            files={"avatar": ("a.png", b"a", "image/png")},
            headers=auth(creator),
        ).json()
        response = client.put(
            f"/api/forums/{created['id']}",
            files={"avatar": ("b.png", b"b", "image/png")},
            headers=auth(creator),
        )
        assert response.status_code == 200
        assert response.json()["avatar_url"].endswith("_b.png")
        assert storage.deleted == [("forum-media", created["avatar_url"])]

    def test_edit_with_image_while_database_is_written(self, client, forum, creator, db, auth, storage):
        def rename(bucket, path):
            with db.transaction() as uow:
                uow.execute("UPDATE forums SET description = 'busy' WHERE id = ?", (forum["id"],))
        storage.on_upload = rename
        response = client.put(
            f"/api/forums/{forum['id']}",
            data={"name": "Renamed"},
            files={"cover": ("c.png", b"c", "image/png")},
            headers=auth(creator),
        )
        assert response.status_code == 200, response.text
        body = response.json()
        assert body["name"] == "Renamed"
        assert body["description"] == "busy"
        assert body["cover_url"].endswith("_c.png")
        assert storage.deleted == []

    def test_outsider_upload_is_never_sent(self, client, forum, make_user, auth, storage):
        response = client.put(
            f"/api/forums/{forum['id']}",
            files={"avatar": ("a.png", b"a", "image/png")},
            headers=auth(make_user("outsider")),
        )
        assert response.status_code == 403
        assert storage.uploaded == []


class TestDeleteForum:
    def test_creator_deletes(self, client, forum, creator, auth, count_rows):
        response = client.delete(f"/api/forums/{forum['id']}", headers=auth(creator))
        assert response.status_code == 200
        assert response.json() == {"message": "Forum deleted successfully."}
        assert count_rows("SELECT COUNT(*) FROM forums") == 0
        assert count_rows("SELECT COUNT(*) FROM forum_members") == 0

    def test_admin_deletes(self, client, forum, make_user, auth):
        response = client.delete(f"/api/forums/{forum['id']}", headers=auth(make_user("admin", admin=True)))
        assert response.status_code == 200

    def test_core_member_who_is_not_creator_cannot_delete(self, client, forum, db, make_user, auth):
        core = make_user("core2")
        with db.transaction() as uow:
            uow.execute(
                "INSERT INTO forum_members (forum_id, user_id, role, is_approved) VALUES (?, ?, 'core', 1)",
                (forum["id"], core),
            )
        response = client.delete(f"/api/forums/{forum['id']}", headers=auth(core))
        assert response.status_code == 403
