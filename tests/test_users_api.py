from tests.conftest import bearer, register


def test_list_users_requires_admin(client, customer_headers):
    response = client.get("/api/users", headers=customer_headers)
    assert response.status_code == 403
    assert response.json()["error"]["message"] == "Access denied. Required role: admin. Your role: user"


def test_list_users_requires_token(client):
    assert client.get("/api/users").status_code == 401


def test_list_users_paginates_and_filters(client, admin_headers):
    for i in range(5):
        register(client, f"user{i}@shop.com", name=f"User {i}")
    response = client.get("/api/users", headers=admin_headers, params={"limit": 2, "page": 2, "role": "user"})
    assert response.status_code == 200
    data = response.json()["data"]
    assert len(data["users"]) == 2
    assert data["pagination"] == {
        "current_page": 2,
        "total_pages": 3,
        "total_users": 5,
        "has_next_page": True,
        "has_prev_page": True,
    }
    assert all("password_hash" not in u and "refresh_token" not in u for u in data["users"])


def test_list_users_search(client, admin_headers):
    register(client, "zoe@shop.com", name="Zoe")
    response = client.get("/api/users", headers=admin_headers, params={"search": "ZOE"})
    assert [u["email"] for u in response.json()["data"]["users"]] == ["zoe@shop.com"]


def test_list_users_rejects_unknown_sort(client, admin_headers):
    response = client.get("/api/users", headers=admin_headers, params={"sort": "password_hash"})
    assert response.status_code == 400


def test_user_stats(client, admin_headers, customer):
    response = client.get("/api/users/stats", headers=admin_headers)
    assert response.status_code == 200
    stats = response.json()["data"]
    assert stats["total_users"] == 2
    assert stats["admin_count"] == 1
    assert stats["user_count"] == 1
    assert stats["active_users"] == 2
    assert stats["recent_users"] == 2


def test_get_own_profile_by_id(client, customer, customer_headers):
    user_id = customer["user"]["id"]
    response = client.get(f"/api/users/{user_id}", headers=customer_headers)
    assert response.status_code == 200
    assert response.json()["data"]["user"]["email"] == "jane@shop.com"


def test_cannot_view_someone_else(client, admin, customer_headers):
    response = client.get(f"/api/users/{admin['user']['id']}", headers=customer_headers)
    assert response.status_code == 403


def test_admin_can_view_anyone(client, admin_headers, customer):
    assert client.get(f"/api/users/{customer['user']['id']}", headers=admin_headers).status_code == 200


def test_get_user_bad_id_and_missing(client, admin_headers):
    assert client.get("/api/users/not-an-id", headers=admin_headers).status_code == 400
    assert client.get("/api/users/64b7f0c2a1b2c3d4e5f60718", headers=admin_headers).status_code == 404


def test_user_cannot_promote_themselves(client, customer, customer_headers):
    user_id = customer["user"]["id"]
    response = client.put(f"/api/users/{user_id}", headers=customer_headers, json={"name": "Janet", "role": "admin"})
    assert response.status_code == 200
    user = response.json()["data"]["user"]
    assert user["name"] == "Janet"
    assert user["role"] == "user"


def test_admin_can_change_role(client, admin_headers, customer):
    user_id = customer["user"]["id"]
    response = client.put(f"/api/users/{user_id}", headers=admin_headers, json={"role": "admin"})
    assert response.json()["data"]["user"]["role"] == "admin"


def test_update_rejects_bad_phone(client, customer, customer_headers):
    response = client.put(f"/api/users/{customer['user']['id']}", headers=customer_headers, json={"phone": "12ab"})
    assert response.status_code == 400


def test_toggle_status_deactivates_and_clears_refresh_token(client, db, admin_headers, customer):
    user_id = customer["user"]["id"]
    response = client.patch(f"/api/users/{user_id}/status", headers=admin_headers, json={"is_active": False})
    assert response.status_code == 200
    assert response.json()["message"] == "User account deactivated successfully"
    assert db["user"].find_one({"email": "jane@shop.com"})["refresh_token"] is None
    refresh = client.post("/api/auth/refresh-token", json={"refresh_token": customer["refresh_token"]})
    assert refresh.status_code == 401
    profile = client.get("/api/auth/profile", headers=bearer(customer["access_token"]))
    assert profile.status_code == 401


def test_toggle_status_needs_boolean(client, admin_headers, customer):
    response = client.patch(f"/api/users/{customer['user']['id']}/status", headers=admin_headers, json={"is_active": "no"})
    assert response.status_code == 400
    assert "must be a boolean" in response.json()["error"]["message"]


def test_admin_cannot_toggle_own_status(client, admin, admin_headers):
    response = client.patch(f"/api/users/{admin['user']['id']}/status", headers=admin_headers, json={"is_active": False})
    assert response.status_code == 400
    assert response.json()["error"]["message"] == "Admin cannot change their own account status"


def test_toggle_status_is_admin_only(client, admin, customer_headers):
    response = client.patch(f"/api/users/{admin['user']['id']}/status", headers=customer_headers, json={"is_active": False})
    assert response.status_code == 403


def test_admin_cannot_delete_own_account(client, db, admin, admin_headers):
    response = client.delete(f"/api/users/{admin['user']['id']}", headers=admin_headers)
    assert response.status_code == 400
    assert db["user"].find_one({"email": "admin@shop.com"})["is_active"] is True


def test_user_deletes_own_account_softly(client, db, customer, customer_headers):
    response = client.delete(f"/api/users/{customer['user']['id']}", headers=customer_headers)
    assert response.status_code == 200
    stored = db["user"].find_one({"email": "jane@shop.com"})
    assert stored is not None
    assert stored["is_active"] is False
    assert stored["refresh_token"] is None


def test_user_cannot_delete_someone_else(client, admin, customer_headers):
    response = client.delete(f"/api/users/{admin['user']['id']}", headers=customer_headers)
    assert response.status_code == 403


def test_admin_cannot_deactivate_self_through_update(client, db, admin, admin_headers):
    response = client.put(f"/api/users/{admin['user']['id']}", headers=admin_headers, json={"is_active": False})
    assert response.status_code == 400
    assert response.json()["error"]["message"] == "Admin cannot change their own account status"
    assert db["user"].find_one({"email": "admin@shop.com"})["is_active"] is True


def test_admin_cannot_demote_self(client, db, admin, admin_headers):
    response = client.put(f"/api/users/{admin['user']['id']}", headers=admin_headers, json={"role": "user"})
    assert response.status_code == 400
    assert db["user"].find_one({"email": "admin@shop.com"})["role"] == "admin"


def test_admin_can_still_edit_own_profile(client, admin, admin_headers):
    response = client.put(
        f"/api/users/{admin['user']['id']}", headers=admin_headers,
        json={"name": "Head Admin", "role": "admin", "is_active": True},
    )
    assert response.status_code == 200
    assert response.json()["data"]["user"]["name"] == "Head Admin"
