"""
tests/test_api_routes.py -- Integration tests for the v1 REST API.

Every request goes through the real ASGI stack (middleware, dependencies,
exception handlers) against shared-memory stores wired in by the api_client
fixture. The database persists for the whole module, so each test uses its
own email addresses.

Covers:
  - health endpoint
  - session cookie: set HttpOnly on signup/signin/reset, cleared on signout
  - Bearer header as an alternative to the cookie
  - ErrorResponse envelope for domain, validation and HTTP errors
  - ?fields= projection
  - item, permission and cart routes end to end
  - TrustedHost rejection

Fixtures used (from conftest.py):
  api_client -- ApiHarness(client, user_store, shop_store, mailer)
"""

from __future__ import annotations

import pytest

from auth.models import Permission


@pytest.fixture(autouse=True)
def _fresh_cookies(api_client) -> None:
    """Start each test anonymous; the client's cookie jar is module-wide."""
    api_client.client.cookies.clear()


def _signup(client, email: str, password: str = "pw", name: str = ""):
    return client.post("/api/v1/auth/signup", json={"email": email, "password": password, "name": name})


def _set_cookie_headers(resp) -> list[str]:
    return resp.headers.get_list("set-cookie")


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


class TestHealth:
    def test_health(self, api_client) -> None:
        resp = api_client.client.get("/api/v1/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok", "version": "0.1.0"}

    def test_unknown_host_rejected(self, api_client) -> None:
        resp = api_client.client.get("/api/v1/health", headers={"Host": "evil.example.com"})
        assert resp.status_code == 400


# ---------------------------------------------------------------------------
# Session lifecycle
# ---------------------------------------------------------------------------


class TestSessionCookie:
    def test_signup_sets_httponly_cookie(self, api_client) -> None:
        resp = _signup(api_client.client, "cookie@example.com", name="Cookie")
        assert resp.status_code == 201
        body = resp.json()
        assert body["email"] == "cookie@example.com"
        assert body["permissions"] == ["USER"]
        assert "hashed_password" not in body
        assert resp.headers["cache-control"] == "no-store"
        token_cookie = [h for h in _set_cookie_headers(resp) if h.startswith("token=")]
        assert token_cookie
        assert "httponly" in token_cookie[0].lower()

    def test_cookie_authenticates_follow_up_requests(self, api_client) -> None:
        client = api_client.client
        _signup(client, "me@example.com")
        resp = client.get("/api/v1/auth/me")
        assert resp.status_code == 200
        assert resp.json()["email"] == "me@example.com"

    def test_me_anonymous_is_null(self, api_client) -> None:
        resp = api_client.client.get("/api/v1/auth/me")
        assert resp.status_code == 200
        assert resp.json() is None

    def test_signout_clears_cookie(self, api_client) -> None:
        client = api_client.client
        _signup(client, "bye@example.com")
        resp = client.post("/api/v1/auth/signout")
        assert resp.status_code == 200
        assert resp.json() == {"message": "Goodbye!"}
        assert any(h.startswith("token=") for h in _set_cookie_headers(resp))
        assert client.get("/api/v1/auth/me").json() is None

    def test_signin_case_insensitive(self, api_client) -> None:
        client = api_client.client
        _signup(client, "mixed@example.com", password="s3cret")
        client.cookies.clear()
        resp = client.post("/api/v1/auth/signin", json={"email": "MIXED@example.com", "password": "s3cret"})
        assert resp.status_code == 200
        assert "token" in resp.cookies

    def test_bearer_header_accepted(self, api_client) -> None:
        user = api_client.make_user("bearer@example.com")
        resp = api_client.client.get("/api/v1/auth/me", headers=api_client.bearer_for(user))
        assert resp.json()["id"] == user.id

    def test_garbage_token_is_anonymous(self, api_client) -> None:
        resp = api_client.client.get("/api/v1/auth/me", headers={"Authorization": "Bearer nonsense"})
        assert resp.json() is None


# ---------------------------------------------------------------------------
# Error envelope
# ---------------------------------------------------------------------------


class TestErrors:
    def test_unknown_route_envelope(self, api_client) -> None:
        resp = api_client.client.get("/api/v1/nope")
        assert resp.status_code == 404
        assert resp.json()["error"] == {"code": "http_404", "message": "Not Found", "detail": None}

    def test_wrong_method_envelope(self, api_client) -> None:
        resp = api_client.client.delete("/api/v1/health")
        assert resp.status_code == 405
        assert resp.json()["error"]["code"] == "http_405"
        assert "GET" in resp.headers["allow"]

    def test_duplicate_signup_conflict(self, api_client) -> None:
        _signup(api_client.client, "twice@example.com")
        resp = _signup(api_client.client, "twice@example.com")
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "already_exists"

    def test_wrong_password(self, api_client) -> None:
        api_client.make_user("wrongpw@example.com", password="right")
        resp = api_client.client.post(
            "/api/v1/auth/signin", json={"email": "wrongpw@example.com", "password": "wrong"}
        )
        assert resp.status_code == 401
        assert resp.json()["error"] == {
            "code": "invalid_credentials",
            "message": "Invalid email or password.",
            "detail": None,
        }

    def test_unknown_email_same_message(self, api_client) -> None:
        resp = api_client.client.post("/api/v1/auth/signin", json={"email": "nobody@example.com", "password": "x"})
        assert resp.status_code == 404
        assert resp.json()["error"]["message"] == "Invalid email or password."

    def test_request_validation_envelope(self, api_client) -> None:
        resp = api_client.client.post("/api/v1/auth/signup", json={"email": "x@example.com"})
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"

    def test_unauthenticated_envelope(self, api_client) -> None:
        resp = api_client.client.post("/api/v1/items", json={"title": "Anon"})
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unauthenticated"


# ---------------------------------------------------------------------------
# Password reset
# ---------------------------------------------------------------------------


class TestPasswordReset:
    def test_full_flow(self, api_client) -> None:
        client = api_client.client
        user = api_client.make_user("flow@example.com", password="old")
        resp = client.post("/api/v1/auth/request-reset", json={"email": "flow@example.com"})
        assert resp.status_code == 200
        assert resp.json() == {"message": "Thanks!"}

        token = api_client.user_store.get_by_id(user.id).reset_token
        assert api_client.mailer.sent[-1][0] == "flow@example.com"
        assert token in api_client.mailer.sent[-1][2]

        resp = client.post(
            "/api/v1/auth/reset-password",
            json={"reset_token": token, "password": "new", "confirm_password": "new"},
        )
        assert resp.status_code == 200
        assert resp.json()["id"] == user.id
        assert "token" in resp.cookies

        client.cookies.clear()
        reused = client.post(
            "/api/v1/auth/reset-password",
            json={"reset_token": token, "password": "again", "confirm_password": "again"},
        )
        assert reused.status_code == 400
        assert reused.json()["error"]["code"] == "invalid_or_expired_token"

        signin = client.post("/api/v1/auth/signin", json={"email": "flow@example.com", "password": "new"})
        assert signin.status_code == 200

    def test_mismatched_passwords(self, api_client) -> None:
        resp = api_client.client.post(
            "/api/v1/auth/reset-password",
            json={"reset_token": "abc", "password": "a", "confirm_password": "b"},
        )
        assert resp.status_code == 422
        assert resp.json()["error"]["message"] == "Your passwords don't match!"

    def test_unknown_email(self, api_client) -> None:
        resp = api_client.client.post("/api/v1/auth/request-reset", json={"email": "missing@example.com"})
        assert resp.status_code == 404

    def test_mail_failure_is_502(self, api_client) -> None:
        api_client.make_user("relaydown@example.com")
        api_client.mailer.fail = True
        try:
            resp = api_client.client.post("/api/v1/auth/request-reset", json={"email": "relaydown@example.com"})
        finally:
            api_client.mailer.fail = False
        assert resp.status_code == 502
        assert resp.json()["error"]["code"] == "delivery_failed"


# ---------------------------------------------------------------------------
# User management
# ---------------------------------------------------------------------------


class TestUserManagement:
    def test_list_users_forbidden_for_plain_user(self, api_client) -> None:
        user = api_client.make_user("plain@example.com")
        resp = api_client.client.get("/api/v1/users", headers=api_client.bearer_for(user))
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "forbidden"

    def test_list_users_with_projection(self, api_client) -> None:
        admin = api_client.make_user("lister@example.com", Permission.ADMIN)
        resp = api_client.client.get("/api/v1/users?fields=id,email", headers=api_client.bearer_for(admin))
        assert resp.status_code == 200
        rows = resp.json()
        assert all(set(r) == {"id", "email"} for r in rows)
        assert "lister@example.com" in {r["email"] for r in rows}

    def test_update_permissions_replaces(self, api_client) -> None:
        admin = api_client.make_user("granter@example.com", Permission.ADMIN)
        target = api_client.make_user("grantee@example.com")
        resp = api_client.client.put(
            f"/api/v1/users/{target.id}/permissions",
            json={"permissions": ["ITEMCREATE", "ITEMDELETE", "ITEMCREATE"]},
            headers=api_client.bearer_for(admin),
        )
        assert resp.status_code == 200
        assert resp.json()["permissions"] == ["ITEMCREATE", "ITEMDELETE"]

    def test_update_permissions_unknown_label(self, api_client) -> None:
        admin = api_client.make_user("granter2@example.com", Permission.ADMIN)
        resp = api_client.client.put(
            f"/api/v1/users/{admin.id}/permissions",
            json={"permissions": ["ROOT"]},
            headers=api_client.bearer_for(admin),
        )
        assert resp.status_code == 422

    def test_plain_user_cannot_self_escalate(self, api_client) -> None:
        user = api_client.make_user("climber@example.com")
        resp = api_client.client.put(
            f"/api/v1/users/{user.id}/permissions",
            json={"permissions": ["ADMIN"]},
            headers=api_client.bearer_for(user),
        )
        assert resp.status_code == 403
        assert api_client.user_store.get_by_id(user.id).permissions == {Permission.USER}


# ---------------------------------------------------------------------------
# Items
# ---------------------------------------------------------------------------


class TestItems:
    def test_create_read_update_delete(self, api_client) -> None:
        client = api_client.client
        owner = api_client.make_user("seller@example.com")
        auth = api_client.bearer_for(owner)

        created = client.post("/api/v1/items", json={"title": "Lamp", "price": 1999}, headers=auth)
        assert created.status_code == 201
        item = created.json()
        assert item["user_id"] == owner.id

        fetched = client.get(f"/api/v1/items/{item['id']}?fields=title,price")
        assert fetched.json() == {"title": "Lamp", "price": 1999}

        patched = client.patch(f"/api/v1/items/{item['id']}", json={"price": 1500}, headers=auth)
        assert patched.status_code == 200
        assert patched.json()["price"] == 1500
        assert patched.json()["title"] == "Lamp"

        deleted = client.delete(f"/api/v1/items/{item['id']}", headers=auth)
        assert deleted.status_code == 200
        assert deleted.json()["id"] == item["id"]
        assert client.get(f"/api/v1/items/{item['id']}").status_code == 404

    def test_null_description_is_a_validation_error(self, api_client) -> None:
        client = api_client.client
        owner = api_client.make_user("nulldesc@example.com")
        auth = api_client.bearer_for(owner)
        item = client.post("/api/v1/items", json={"title": "Mug", "description": "Blue"}, headers=auth).json()

        resp = client.patch(f"/api/v1/items/{item['id']}", json={"description": None}, headers=auth)
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"
        assert client.get(f"/api/v1/items/{item['id']}").json()["description"] == "Blue"

    def test_missing_item_envelope(self, api_client) -> None:
        resp = api_client.client.get("/api/v1/items/999999")
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "not_found"

    def test_list_filter_by_owner(self, api_client) -> None:
        owner = api_client.make_user("lister-owner@example.com")
        api_client.client.post("/api/v1/items", json={"title": "Mine"}, headers=api_client.bearer_for(owner))
        resp = api_client.client.get(f"/api/v1/items?user_id={owner.id}")
        assert [i["title"] for i in resp.json()] == ["Mine"]

    def test_stranger_cannot_update_or_delete(self, api_client) -> None:
        client = api_client.client
        owner = api_client.make_user("owner2@example.com")
        stranger = api_client.make_user("stranger2@example.com")
        item = client.post("/api/v1/items", json={"title": "Mine"}, headers=api_client.bearer_for(owner)).json()

        assert client.patch(
            f"/api/v1/items/{item['id']}", json={"title": "Ours"}, headers=api_client.bearer_for(stranger)
        ).status_code == 403
        assert client.delete(f"/api/v1/items/{item['id']}", headers=api_client.bearer_for(stranger)).status_code == 403

    def test_moderator_can_delete(self, api_client) -> None:
        client = api_client.client
        owner = api_client.make_user("owner3@example.com")
        moderator = api_client.make_user("mod@example.com", Permission.USER, Permission.ITEMDELETE)
        item = client.post("/api/v1/items", json={"title": "Spam"}, headers=api_client.bearer_for(owner)).json()
        resp = client.delete(f"/api/v1/items/{item['id']}", headers=api_client.bearer_for(moderator))
        assert resp.status_code == 200


# ---------------------------------------------------------------------------
# Cart
# ---------------------------------------------------------------------------


class TestCart:
    def test_add_merges_and_lists(self, api_client) -> None:
        client = api_client.client
        owner = api_client.make_user("cart-owner@example.com")
        shopper = api_client.make_user("shopper@example.com")
        item = client.post("/api/v1/items", json={"title": "Mug"}, headers=api_client.bearer_for(owner)).json()

        auth = api_client.bearer_for(shopper)
        client.post("/api/v1/cart", json={"item_id": item["id"]}, headers=auth)
        second = client.post("/api/v1/cart", json={"item_id": item["id"]}, headers=auth)
        assert second.json()["quantity"] == 2

        cart = client.get("/api/v1/cart", headers=auth).json()
        assert len(cart) == 1
        assert cart[0]["item_id"] == item["id"]

    def test_cannot_remove_other_users_row(self, api_client) -> None:
        client = api_client.client
        owner = api_client.make_user("cart-owner2@example.com")
        shopper = api_client.make_user("shopper2@example.com")
        item = client.post("/api/v1/items", json={"title": "Cup"}, headers=api_client.bearer_for(owner)).json()
        row = client.post("/api/v1/cart", json={"item_id": item["id"]}, headers=api_client.bearer_for(shopper)).json()

        resp = client.delete(f"/api/v1/cart/{row['id']}", headers=api_client.bearer_for(owner))
        assert resp.status_code == 403
        ok = client.delete(f"/api/v1/cart/{row['id']}", headers=api_client.bearer_for(shopper))
        assert ok.status_code == 200

    def test_cart_requires_auth(self, api_client) -> None:
        assert api_client.client.get("/api/v1/cart").status_code == 401
