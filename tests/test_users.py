"""Tests for user profiles, member registration, admin tools and follows."""

import pytest


@pytest.fixture
def admin(make_user):
    return make_user("admin", admin=True)


@pytest.fixture
def alice(make_user):
    return make_user("alice")


@pytest.fixture
def bob(make_user):
    return make_user("bob")


REGISTRATION_FORM = {
    "birth_place": "Bandung",
    "birth_date": "1990-05-01",
    "zone": "DPW",
    "latest_education": "S1",
    "address": "Jl. Merdeka 1",
    "nik": "3201010101010001",
    "phone_number": "08123456789",
}


def register_member(client, headers, **overrides):
    data = dict(REGISTRATION_FORM)
    data.update(overrides)
    return client.post("/api/users/register-member", data=data, headers=headers)


class TestProfile:
    def test_get_profile(self, client, alice, bob, auth):
        response = client.get(f"/api/users/{alice}", headers=auth(bob))
        assert response.status_code == 200
        body = response.json()
        assert body["username"] == "alice"
        assert body["is_member"] is False
        assert body["is_admin"] is False
        assert body["is_following"] is False

    def test_unknown_user(self, client, alice, auth):
        response = client.get("/api/users/nobody", headers=auth(alice))
        assert response.status_code == 404
        assert response.json() == {"message": "User not found."}

    def test_update_own_profile(self, client, alice, auth, storage):
        response = client.put(
            f"/api/users/{alice}",
            data={"display_name": "Alice A.", "bio": "hi", "is_private": "true"},
            files={"avatar": ("me.png", b"me", "image/png")},
            headers=auth(alice),
        )
        assert response.status_code == 200
        body = response.json()
        assert body["display_name"] == "Alice A."
        assert body["is_private"] is True
        assert body["avatar_url"].endswith("_me.png")
        bucket, path, _ = storage.uploaded[0]
        assert bucket == "user-media"
        assert path.startswith(f"user/{alice}/avatar/")

    def test_cannot_update_someone_else(self, client, alice, bob, auth):
        response = client.put(f"/api/users/{alice}", data={"bio": "x"}, headers=auth(bob))
        assert response.status_code == 403
        assert response.json() == {"message": "You are not authorized to update this profile."}

    def test_admin_sets_verification(self, client, alice, admin, auth):
        denied = client.put(f"/api/users/{alice}", data={"is_verified": "true"}, headers=auth(alice))
        assert denied.status_code == 403
        response = client.put(f"/api/users/{alice}", data={"is_verified": "true"}, headers=auth(admin))
        assert response.status_code == 200
        assert response.json()["is_verified"] is True

    def test_username_taken(self, client, alice, bob, auth):
        response = client.put(f"/api/users/{alice}", data={"username": "bob"}, headers=auth(alice))
        assert response.status_code == 400
        assert response.json() == {"message": "Username is already taken."}

    def test_new_avatar_discarded_when_update_fails(self, client, alice, bob, auth, storage, fetch_one):
        response = client.put(
            f"/api/users/{alice}",
            data={"username": "bob"},
            files={"avatar": ("me.png", b"me", "image/png")},
            headers=auth(alice),
        )
        assert response.status_code == 400
        bucket, path, _ = storage.uploaded[0]
        assert storage.deleted == [("user-media", storage.public_url(bucket, path))]
        assert fetch_one("SELECT avatar_url FROM users WHERE id = ?", (alice,)) == {"avatar_url": None}

    def test_empty_update(self, client, alice, auth):
        response = client.put(f"/api/users/{alice}", data={}, headers=auth(alice))
        assert response.status_code == 400
        assert response.json() == {"message": "No fields provided for update."}


class TestFollows:
    def test_follow_and_lists(self, client, alice, bob, auth):
        response = client.post(f"/api/users/{bob}/follow", headers=auth(alice))
        assert response.status_code == 201
        assert response.json() == {"message": "Followed successfully."}

        profile = client.get(f"/api/users/{bob}", headers=auth(alice)).json()
        assert profile["is_following"] is True
        assert profile["followers_count"] == 1

        followers = client.get(f"/api/users/{bob}/followers", headers=auth(bob)).json()
        assert followers["total"] == 1
        assert followers["users"][0]["id"] == alice
        assert followers["users"][0]["is_following"] is False

        following = client.get(f"/api/users/{alice}/following", headers=auth(alice)).json()
        assert [u["id"] for u in following["users"]] == [bob]
        assert following["users"][0]["is_following"] is True

    def test_follow_errors(self, client, alice, bob, auth):
        own = client.post(f"/api/users/{alice}/follow", headers=auth(alice))
        assert own.status_code == 400
        assert own.json() == {"message": "You cannot follow yourself."}
        client.post(f"/api/users/{bob}/follow", headers=auth(alice))
        again = client.post(f"/api/users/{bob}/follow", headers=auth(alice))
        assert again.status_code == 400
        assert again.json() == {"message": "You are already following this user."}
        missing = client.post("/api/users/ghost/follow", headers=auth(alice))
        assert missing.status_code == 404

    def test_unfollow(self, client, alice, bob, auth):
        client.post(f"/api/users/{bob}/follow", headers=auth(alice))
        response = client.delete(f"/api/users/{bob}/follow", headers=auth(alice))
        assert response.status_code == 200
        again = client.delete(f"/api/users/{bob}/follow", headers=auth(alice))
        assert again.status_code == 404
        assert again.json() == {"message": "You are not following this user."}


class TestMemberRegistration:
    def test_register_accept_promotes_atomically(self, client, alice, admin, auth, storage, fetch_one):
        response = client.post(
            "/api/users/register-member",
            data=REGISTRATION_FORM,
            files={"id_card": ("card.jpg", b"card", "image/jpeg")},
            headers=auth(alice),
        )
        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "pending"
        assert body["id_card_url"].endswith("_card.jpg")

        fetched = client.get(f"/api/users/registrant/{alice}", headers=auth(admin))
        assert fetched.json()["zone"] == "DPW"

        accepted = client.patch(
            f"/api/users/registrant/{alice}/accept", json={"position": "Secretary"}, headers=auth(admin)
        )
        assert accepted.status_code == 200
        assert accepted.json()["member"]["position"] == "Secretary"
        assert accepted.json()["member"]["nik"] == REGISTRATION_FORM["nik"]
        assert fetch_one("SELECT is_verified FROM users WHERE id = ?", (alice,)) == {"is_verified": True}
        assert fetch_one("SELECT status FROM users_registration WHERE user_id = ?", (alice,)) == {"status": "active"}

        profile = client.get(f"/api/users/{alice}", headers=auth(alice)).json()
        assert profile["is_member"] is True
        assert profile["zone"] == "DPW"

        again = client.patch(f"/api/users/registrant/{alice}/accept", headers=auth(admin))
        assert again.status_code == 400
        assert again.json() == {"message": "Registrant has already been processed."}

    def test_missing_fields_and_bad_zone(self, client, alice, auth):
        missing = client.post("/api/users/register-member", data={"zone": "DPW"}, headers=auth(alice))
        assert missing.status_code == 400
        assert missing.json() == {"message": "Required registration fields are missing."}
        bad_zone = register_member(client, auth(alice), zone="XYZ")
        assert bad_zone.status_code == 400
        assert bad_zone.json() == {"message": "Invalid zone."}

    def test_duplicate_registration(self, client, alice, auth):
        register_member(client, auth(alice))
        response = register_member(client, auth(alice))
        assert response.status_code == 400
        assert response.json() == {"message": "You have already submitted a registration."}

    def test_database_stays_writable_during_id_card_upload(self, client, alice, make_user, auth, storage, fetch_one):
        written = []
        storage.on_upload = lambda bucket, path: written.append(make_user())
        response = client.post(
            "/api/users/register-member",
            data=REGISTRATION_FORM,
            files={"id_card": ("ktp.png", b"ktp", "image/png")},
            headers=auth(alice),
        )
        assert response.status_code == 201, response.text
        assert response.json()["id_card_url"].endswith("_ktp.png")
        assert fetch_one("SELECT id FROM users WHERE id = ?", (written[0],)) == {"id": written[0]}

    def test_duplicate_registration_uploads_nothing(self, client, alice, auth, storage):
        register_member(client, auth(alice))
        response = client.post(
            "/api/users/register-member",
            data=REGISTRATION_FORM,
            files={"id_card": ("ktp.png", b"ktp", "image/png")},
            headers=auth(alice),
        )
        assert response.status_code == 400
        assert storage.uploaded == []

    def test_rejected_registrant_may_reapply(self, client, alice, admin, auth):
        register_member(client, auth(alice))
        rejected = client.patch(f"/api/users/registrant/{alice}/reject", headers=auth(admin))
        assert rejected.json() == {"message": "Registrant rejected successfully."}
        response = register_member(client, auth(alice), zone="DPP")
        assert response.status_code == 201
        assert response.json()["status"] == "pending"
        assert response.json()["zone"] == "DPP"

    def test_registrant_routes_require_admin(self, client, alice, auth):
        register_member(client, auth(alice))
        response = client.patch(f"/api/users/registrant/{alice}/accept", headers=auth(alice))
        assert response.status_code == 403
        assert response.json() == {"message": "You are not authorized to access this resource."}

    def test_unknown_registrant(self, client, admin, auth):
        response = client.get("/api/users/registrant/nobody", headers=auth(admin))
        assert response.status_code == 404
        assert response.json() == {"message": "Registrant not found."}


class TestAdminTools:
    def test_list_users_with_metrics(self, client, alice, bob, admin, auth):
        register_member(client, auth(alice))
        client.patch(f"/api/users/registrant/{alice}/accept", headers=auth(admin))
        register_member(client, auth(bob), zone="DPD")

        body = client.get("/api/users/", headers=auth(admin)).json()
        assert body["total"] == 3
        assert body["metrics"] == {
            "total_members": 1,
            "total_registrants": 1,
            "members_by_zone": {"DPD": 0, "DPW": 1, "DPP": 0},
        }

        members = client.get("/api/users/", params={"status": "member"}, headers=auth(admin)).json()
        assert [u["id"] for u in members["users"]] == [alice]
        registrants = client.get("/api/users/", params={"status": "registrant"}, headers=auth(admin)).json()
        assert [u["id"] for u in registrants["users"]] == [bob]
        assert registrants["users"][0]["status"] == "registrant"

    def test_list_users_requires_admin(self, client, alice, auth):
        response = client.get("/api/users/", headers=auth(alice))
        assert response.status_code == 403

    def test_toggle_admin(self, client, alice, admin, auth):
        granted = client.patch(f"/api/users/{alice}/toggle-admin", headers=auth(admin))
        assert granted.json() == {"message": "Admin status granted successfully."}
        assert client.get(f"/api/users/{alice}", headers=auth(alice)).json()["is_admin"] is True
        removed = client.patch(f"/api/users/{alice}/toggle-admin", headers=auth(admin))
        assert removed.json() == {"message": "Admin status removed successfully."}
