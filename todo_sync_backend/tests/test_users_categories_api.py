from fastapi.testclient import TestClient

from todosync.main import app

client = TestClient(app)

ADMIN_HEADER = "X-Admin-User-Id"


def register(email, name="Someone", auth_provider="email", is_admin=False):
    return client.post(
        "/api/v1/users/",
        json={"email": email, "name": name, "auth_provider": auth_provider, "is_admin": is_admin},
    )


def admin_headers():
    res = register("admin@example.com", name="Admin", is_admin=True)
    assert res.status_code == 201
    return {ADMIN_HEADER: res.json()["id"]}


class TestUsers:
    def test_create_and_get(self):
        res = register("ann@example.com", name="Ann")
        assert res.status_code == 201
        user = res.json()
        assert user["email"] == "ann@example.com"
        assert user["is_admin"] is False
        assert user["avatar_url"] is None

        fetched = client.get(f"/api/v1/users/{user['id']}")
        assert fetched.status_code == 200
        assert fetched.json() == user

        assert client.get("/api/v1/users/nobody").status_code == 404

    def test_duplicate_email(self):
        assert register("dup@example.com").status_code == 201
        res = register("dup@example.com")
        assert res.status_code == 409
        assert res.json()["error"] == "DuplicateError"

    def test_invalid_email_rejected(self):
        res = register("not-an-email")
        assert res.status_code == 422

    def test_authenticate_existing_email_user(self):
        user = register("eve@example.com", name="Eve").json()
        res = client.post("/api/v1/users/authenticate", json={"email": "eve@example.com", "auth_provider": "email"})
        assert res.status_code == 200
        assert res.json()["id"] == user["id"]

    def test_authenticate_unknown_email_user_returns_null(self):
        res = client.post("/api/v1/users/authenticate", json={"email": "new@example.com", "auth_provider": "email"})
        assert res.status_code == 200
        assert res.json() is None

    def test_google_login_provisions_then_refreshes(self):
        res = client.post(
            "/api/v1/users/authenticate",
            json={"email": "g@example.com", "auth_provider": "google", "name": "Gee"},
        )
        assert res.status_code == 200
        created = res.json()
        assert created["id"].startswith("google_")
        assert created["name"] == "Gee"
        assert created["is_admin"] is False

        res2 = client.post(
            "/api/v1/users/authenticate",
            json={"email": "g@example.com", "auth_provider": "google", "avatar_url": "https://img/g.png"},
        )
        refreshed = res2.json()
        assert refreshed["id"] == created["id"]
        assert refreshed["name"] == "Gee"
        assert refreshed["avatar_url"] == "https://img/g.png"

    def test_google_login_without_name(self):
        res = client.post("/api/v1/users/authenticate", json={"email": "anon@example.com", "auth_provider": "google"})
        assert res.json()["name"] == "Unknown User"

    def test_verify_admin(self):
        headers = admin_headers()
        plain = register("plain@example.com").json()
        assert client.get(f"/api/v1/users/{headers[ADMIN_HEADER]}/is-admin").json() == {"is_admin": True}
        assert client.get(f"/api/v1/users/{plain['id']}/is-admin").json() == {"is_admin": False}
        assert client.get("/api/v1/users/ghost/is-admin").json() == {"is_admin": False}


class TestCategories:
    def test_admin_required_for_writes(self):
        plain = register("plain@example.com").json()
        for headers in ({}, {ADMIN_HEADER: plain["id"]}, {ADMIN_HEADER: "ghost"}):
            res = client.post("/api/v1/categories/", json={"name": "Work"}, headers=headers)
            assert res.status_code == 403
            assert res.json()["message"] == "Access denied: Admin privileges required"
        assert client.get("/api/v1/categories/").json() == []

    def test_create_list_update(self):
        headers = admin_headers()
        first = client.post("/api/v1/categories/", json={"name": "Work", "color": "#AABBCC"}, headers=headers)
        assert first.status_code == 201
        second = client.post("/api/v1/categories/", json={"name": "Home"}, headers=headers)
        assert second.status_code == 201

        names = [c["name"] for c in client.get("/api/v1/categories/").json()]
        assert names == ["Home", "Work"]

        cid = first.json()["id"]
        res = client.patch(
            f"/api/v1/categories/{cid}",
            json={"description": "Office", "color": None},
            headers=headers,
        )
        assert res.status_code == 200
        updated = res.json()
        assert updated["name"] == "Work"
        assert updated["description"] == "Office"
        assert updated["color"] is None

    def test_duplicate_name_and_bad_color(self):
        headers = admin_headers()
        assert client.post("/api/v1/categories/", json={"name": "Work"}, headers=headers).status_code == 201
        assert client.post("/api/v1/categories/", json={"name": "Work"}, headers=headers).status_code == 409

        other = client.post("/api/v1/categories/", json={"name": "Other"}, headers=headers).json()
        res = client.patch(f"/api/v1/categories/{other['id']}", json={"name": "Work"}, headers=headers)
        assert res.status_code == 409

        res_color = client.post("/api/v1/categories/", json={"name": "Red", "color": "red"}, headers=headers)
        assert res_color.status_code == 422
        assert res_color.json()["error"] == "ValidationError"
        assert "Color must be a valid hex code" in res_color.json()["detail"][0]["msg"]

    def test_update_and_delete_missing(self):
        headers = admin_headers()
        assert client.patch("/api/v1/categories/999", json={"name": "X"}, headers=headers).status_code == 404
        assert client.delete("/api/v1/categories/999", headers=headers).status_code == 404

    def test_delete_refuses_category_in_use(self):
        headers = admin_headers()
        cid = client.post("/api/v1/categories/", json={"name": "Busy"}, headers=headers).json()["id"]
        owner = register("owner@example.com").json()["id"]
        todo = client.post("/api/v1/todos/", json={"user_id": owner, "title": "Filed", "category_id": cid}).json()

        res = client.delete(f"/api/v1/categories/{cid}", headers=headers)
        assert res.status_code == 409
        assert res.json()["message"] == "Cannot delete category: 1 todo(s) are still assigned to this category"

        client.delete(f"/api/v1/todos/{todo['id']}", params={"user_id": owner})
        assert client.delete(f"/api/v1/categories/{cid}", headers=headers).status_code == 204
        assert client.get("/api/v1/categories/").json() == []
