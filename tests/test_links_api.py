"""Tests for owner link endpoints, the public short-link API, and Supabase auth."""

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import httpx
import pytest
from sqlalchemy.exc import IntegrityError

from linkzy.middleware.supabase_auth import SupabaseAuthContext
from linkzy.models.tables import Link, Profile, UserRole


def _result(scalar=None, scalars=None, rowcount=1):
    result = MagicMock()
    result.scalar_one_or_none.return_value = scalar
    result.scalars.return_value.all.return_value = scalars or []
    result.rowcount = rowcount
    return result


def _make_link(owner_id, code="abc123", clicks=0, impressions=0, earnings="0"):
    return Link(
        id=uuid4(), owner_id=owner_id, original_url="https://example.com/file", short_code=code,
        clicks=clicks, impressions=impressions, earnings=Decimal(earnings),
    )


class _ApiTestBase:
    @pytest.fixture(autouse=True)
    def _setup(self):
        # Import here so conftest env vars are already set
        from fastapi import FastAPI
        from fastapi.testclient import TestClient
        from linkzy.api.errors import install_error_handlers
        from linkzy.api.links import router as links_router
        from linkzy.api.short_links import router as short_links_router
        from linkzy.middleware.rate_limit import reset_rate_limits

        reset_rate_limits()
        self.app = FastAPI()
        install_error_handlers(self.app)
        self.app.include_router(links_router)
        self.app.include_router(short_links_router)
        self.client = TestClient(self.app)

    def _use_db(self, execute_results=()):
        mock_db = AsyncMock(spec=["execute", "add", "commit", "flush", "rollback", "refresh"])
        mock_db.execute = AsyncMock(side_effect=list(execute_results))
        mock_db.commit = AsyncMock()
        mock_db.rollback = AsyncMock()
        mock_db.refresh = AsyncMock()
        mock_db.flush = AsyncMock()
        mock_db.add = MagicMock()

        from linkzy.models.database import get_db
        self.app.dependency_overrides[get_db] = lambda: mock_db
        return mock_db

    def _login(self, is_admin=False):
        from linkzy.middleware.supabase_auth import require_supabase_auth

        self.user = SupabaseAuthContext(
            user_id=uuid4(), supabase_id="sb-user", email="owner@example.com", is_admin=is_admin,
        )
        self.app.dependency_overrides[require_supabase_auth] = lambda: self.user


class TestCreateLink(_ApiTestBase):
    """POST /api/links"""

    def test_creates_link(self):
        self._login()
        mock_db = self._use_db()
        resp = self.client.post("/api/links", json={"url": "example.com/download"})

        assert resp.status_code == 201
        data = resp.json()
        assert data["original_url"] == "https://example.com/download"
        assert len(data["short_code"]) == 6
        assert data["short_url"].endswith(f"/s/{data['short_code']}")
        assert data["clicks"] == 0

        link = mock_db.add.call_args[0][0]
        assert link.owner_id == self.user.user_id

    def test_retries_on_code_collision(self):
        self._login()
        mock_db = self._use_db()
        mock_db.commit = AsyncMock(side_effect=[IntegrityError("INSERT", {}, Exception("duplicate")), None])
        resp = self.client.post("/api/links", json={"url": "https://example.com"})

        assert resp.status_code == 201
        assert mock_db.add.call_count == 2
        mock_db.rollback.assert_called_once()

    def test_gives_up_after_max_attempts(self):
        self._login()
        mock_db = self._use_db()
        mock_db.commit = AsyncMock(side_effect=IntegrityError("INSERT", {}, Exception("duplicate")))
        resp = self.client.post("/api/links", json={"url": "https://example.com"})

        assert resp.status_code == 500
        assert resp.json() == {"error": "Server error"}
        assert mock_db.add.call_count == 5

    def test_invalid_url(self):
        self._login()
        mock_db = self._use_db()
        resp = self.client.post("/api/links", json={"url": "   "})
        assert resp.status_code == 400
        assert resp.json() == {"error": "Please enter a valid URL"}
        mock_db.add.assert_not_called()

    def test_internal_url_rejected(self):
        self._login()
        self._use_db()
        resp = self.client.post("/api/links", json={"url": "http://127.0.0.1/admin"})
        assert resp.status_code == 400

    def test_requires_auth(self):
        self._use_db()
        resp = self.client.post("/api/links", json={"url": "https://example.com"})
        assert resp.status_code == 401


class TestOwnerLinks(_ApiTestBase):
    """GET /api/links, GET /api/links/stats, DELETE /api/links/{id}"""

    def test_list_links(self):
        self._login()
        links = [_make_link(self.user.user_id, "aaa111", clicks=3), _make_link(self.user.user_id, "bbb222")]
        self._use_db([_result(scalars=links)])
        resp = self.client.get("/api/links")

        assert resp.status_code == 200
        assert [link["short_code"] for link in resp.json()] == ["aaa111", "bbb222"]
        assert resp.json()[0]["clicks"] == 3

    def test_stats(self):
        self._login()
        links = [
            _make_link(self.user.user_id, "aaa111", clicks=3, impressions=10, earnings="0.1500"),
            _make_link(self.user.user_id, "bbb222", clicks=1, impressions=4, earnings="0.0500"),
        ]
        self._use_db([_result(scalars=links)])
        resp = self.client.get("/api/links/stats")

        assert resp.status_code == 200
        assert resp.json() == {
            "totalLinks": 2, "totalClicks": 4, "totalImpressions": 14, "totalEarnings": 0.2,
        }

    def test_delete_link(self):
        self._login()
        mock_db = self._use_db([_result(rowcount=1)])
        resp = self.client.delete(f"/api/links/{uuid4()}")
        assert resp.status_code == 200
        mock_db.commit.assert_called_once()

    def test_delete_someone_elses_link(self):
        self._login()
        mock_db = self._use_db([_result(rowcount=0)])
        resp = self.client.delete(f"/api/links/{uuid4()}")
        assert resp.status_code == 404
        assert resp.json() == {"error": "Link not found"}
        mock_db.commit.assert_not_called()


class TestShortLinkApi(_ApiTestBase):
    """GET /api/s/{code}, POST /api/track"""

    def test_get_link_data(self):
        owner_id = uuid4()
        link = _make_link(owner_id, clicks=7, impressions=20, earnings="0.3500")
        mock_db = self._use_db([_result(scalar=link)])
        resp = self.client.get("/api/s/abc123")

        assert resp.status_code == 200
        assert resp.json() == {
            "shortCode": "abc123",
            "originalURL": "https://example.com/file",
            "stats": {"clicks": 7, "impressions": 20, "earnings": 0.35},
            "ownerId": str(owner_id),
        }
        mock_db.commit.assert_not_called()

    def test_unknown_code(self):
        self._use_db([_result(scalar=None)])
        resp = self.client.get("/api/s/zzz999")
        assert resp.status_code == 404
        assert resp.json() == {"error": "Short link not found"}

    def test_track(self):
        resp = self.client.post("/api/track", json={"shortCode": "abc123", "event": "view"})
        assert resp.status_code == 200
        assert resp.json() == {"success": True}

    def test_track_missing_fields(self):
        resp = self.client.post("/api/track", json={"shortCode": "abc123"})
        assert resp.status_code == 400
        assert resp.json() == {"error": "Missing shortCode or event"}


class TestSupabaseAuth(_ApiTestBase):
    """require_supabase_auth via GET /api/me"""

    def test_first_login_creates_profile_with_user_role(self):
        mock_db = self._use_db([_result(scalar=None), _result(scalar=None)])
        with patch(
            "linkzy.middleware.supabase_auth._validate_supabase_token",
            new=AsyncMock(return_value={"id": "sb-123", "email": "new@example.com"}),
        ):
            resp = self.client.get("/api/me", headers={"Authorization": "Bearer good-token"})

        assert resp.status_code == 200
        assert resp.json()["email"] == "new@example.com"
        assert resp.json()["is_admin"] is False

        added = [call.args[0] for call in mock_db.add.call_args_list]
        assert isinstance(added[0], Profile)
        assert isinstance(added[1], UserRole)
        assert added[1].role == "user"
        assert added[1].user_id == added[0].id

    def test_existing_admin(self):
        profile = Profile(id=uuid4(), supabase_id="sb-123", email="admin@example.com")
        mock_db = self._use_db([_result(scalar=profile), _result(scalar=1)])
        with patch(
            "linkzy.middleware.supabase_auth._validate_supabase_token",
            new=AsyncMock(return_value={"id": "sb-123", "email": "admin@example.com"}),
        ):
            resp = self.client.get("/api/me", headers={"Authorization": "Bearer good-token"})

        assert resp.status_code == 200
        assert resp.json() == {"id": str(profile.id), "email": "admin@example.com", "is_admin": True}
        mock_db.add.assert_not_called()

    def test_missing_bearer(self):
        self._use_db()
        resp = self.client.get("/api/me", headers={"Authorization": "Basic abc"})
        assert resp.status_code == 401

    def test_rejected_token(self):
        self._use_db()
        with patch.object(httpx.AsyncClient, "get", new=AsyncMock(return_value=MagicMock(status_code=401))):
            resp = self.client.get("/api/me", headers={"Authorization": "Bearer expired"})
        assert resp.status_code == 401

    def test_supabase_unreachable(self):
        self._use_db()
        with patch.object(httpx.AsyncClient, "get", new=AsyncMock(side_effect=httpx.ConnectError("down"))):
            resp = self.client.get("/api/me", headers={"Authorization": "Bearer token"})
        assert resp.status_code == 503
