from __future__ import annotations

import asyncio
import sys
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from rhapsody.api import admin as admin_module
from rhapsody.api.deps import get_publish_time_source
from rhapsody.config import settings
from rhapsody.database import Base, get_db
from rhapsody.main import app
from rhapsody.services import WordPressPublishTimeSource
from rhapsody.services import entry_store
from rhapsody.utils.admin_password import (
    generate_admin_password_hash,
    sha256_hex,
    verify_admin_password_hash,
)
from rhapsody.utils.admin_token import issue_token, verify_token

ADMIN_PASSWORD = "correct horse battery staple"


def _patch_settings(testcase: unittest.TestCase, **values) -> None:
    for name, value in values.items():
        p = patch.object(settings, name, value)
        p.start()
        testcase.addCleanup(p.stop)


class _ApiTestCase(unittest.TestCase):
    def setUp(self):
        _patch_settings(
            self,
            access_log_enabled=False,
            admin_password=ADMIN_PASSWORD,
            admin_password_hash=None,
            admin_session_secret="test-session-secret",
            admin_password_version=1,
            admin_cookie_secure="false",
            seed_diaries_path=None,
            feed_timezone="UTC",
        )
        admin_module._RATE_ATTEMPTS.clear()
        entry_store._read_seed_file.cache_clear()

        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        _patch_settings(self, upload_dir=str(Path(tmp.name) / "uploads"))

        # 每个请求都在新的事件循环里跑，NullPool 保证连接不跨循环复用
        self.engine = create_async_engine(f"sqlite+aiosqlite:///{tmp.name}/test.db", poolclass=NullPool)
        asyncio.run(self._create_tables())
        session_factory = async_sessionmaker(self.engine, class_=AsyncSession, expire_on_commit=False)
        self.db_calls = 0

        async def override_get_db():
            self.db_calls += 1
            async with session_factory() as session:
                yield session

        app.dependency_overrides[get_db] = override_get_db
        app.dependency_overrides[get_publish_time_source] = lambda: WordPressPublishTimeSource(site="")
        self.addCleanup(app.dependency_overrides.clear)

        self.client = TestClient(app)

    async def _create_tables(self):
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        await self.engine.dispose()

    def _login(self):
        resp = self.client.post("/api/admin/login", json={"password_hash": sha256_hex(ADMIN_PASSWORD)})
        self.assertEqual(resp.status_code, 204)
        return resp


class AdminGateTests(_ApiTestCase):
    def test_writes_without_session_never_touch_storage(self):
        requests = [
            ("post", "/api/diaries", {"json": {"date": "2024-01-01"}}),
            ("put", "/api/diaries/1", {"json": {"summary": "x"}}),
            ("delete", "/api/diaries/1", {}),
            ("put", "/api/profile", {"json": {"name": "x"}}),
            ("post", "/api/uploads", {"content": b"\x89PNG", "headers": {"content-type": "image/png"}}),
        ]
        for method, url, kwargs in requests:
            with self.subTest(method=method, url=url):
                resp = getattr(self.client, method)(url, **kwargs)
                self.assertEqual(resp.status_code, 401)
                self.assertEqual(resp.json()["code"], "ADMIN_REQUIRED")
                self.assertIn("request_id", resp.json())

        self.assertEqual(self.db_calls, 0)

    def test_forged_cookie_is_rejected(self):
        forged = issue_token(secret="other-secret", pwd_version=1, days=1)
        self.client.cookies.set(settings.admin_cookie_name, forged)

        resp = self.client.post("/api/diaries", json={"date": "2024-01-01"})

        self.assertEqual(resp.status_code, 401)
        self.assertEqual(self.db_calls, 0)

    def test_unconfigured_admin_disables_login_and_writes(self):
        _patch_settings(self, admin_password=None, admin_session_secret=None)

        login = self.client.post("/api/admin/login", json={"password_hash": sha256_hex(ADMIN_PASSWORD)})
        write = self.client.post("/api/diaries", json={"date": "2024-01-01"})

        self.assertEqual(login.status_code, 401)
        self.assertEqual(write.status_code, 401)
        self.assertEqual(self.client.get("/api/admin/status").json(), {"admin": False})

    def test_login_flow(self):
        wrong = self.client.post("/api/admin/login", json={"password_hash": sha256_hex("nope")})
        self.assertEqual(wrong.status_code, 401)
        self.assertEqual(self.client.get("/api/admin/status").json(), {"admin": False})

        resp = self._login()
        self.assertIn(settings.admin_cookie_name, resp.cookies)
        self.assertEqual(self.client.get("/api/admin/status").json(), {"admin": True})

        self.assertEqual(self.client.post("/api/admin/logout").status_code, 204)
        self.client.cookies.clear()
        self.assertEqual(self.client.get("/api/admin/status").json(), {"admin": False})

    def test_login_rate_limit(self):
        _patch_settings(self, admin_rate_limit_max_attempts=2)
        for _ in range(2):
            self.client.post("/api/admin/login", json={"password_hash": "bad"})

        resp = self.client.post("/api/admin/login", json={"password_hash": sha256_hex(ADMIN_PASSWORD)})

        self.assertEqual(resp.status_code, 429)

    def test_forwarded_for_header_does_not_reset_rate_limit(self):
        _patch_settings(self, admin_rate_limit_max_attempts=2)
        for i in range(2):
            self.client.post(
                "/api/admin/login",
                json={"password_hash": "bad"},
                headers={"x-forwarded-for": f"10.0.0.{i}"},
            )

        resp = self.client.post(
            "/api/admin/login",
            json={"password_hash": sha256_hex(ADMIN_PASSWORD)},
            headers={"x-forwarded-for": "10.0.0.99"},
        )

        self.assertEqual(resp.status_code, 429)
        self.assertEqual(list(admin_module._RATE_ATTEMPTS), ["testclient"])

    def test_expired_attempts_are_dropped(self):
        admin_module._RATE_ATTEMPTS["203.0.113.7"] = [0.0]

        admin_module._enforce_rate_limit("203.0.113.7")

        self.assertNotIn("203.0.113.7", admin_module._RATE_ATTEMPTS)


class DiaryApiTests(_ApiTestCase):
    def setUp(self):
        super().setUp()
        self._login()

    def _create(self, **body):
        resp = self.client.post("/api/diaries", json=body)
        self.assertEqual(resp.status_code, 200, resp.text)
        return resp.json()

    def test_create_list_and_page(self):
        first = self._create(date="2024-01-01", summary="a", tags=["旅行"])
        second = self._create(date="2024-02-01", summary="b", tags=["旅行", "美食"], pinned=True)
        self.assertEqual((first["id"], second["id"]), (1, 2))
        self.assertTrue(second["pinned"])

        full = self.client.get("/api/diaries").json()
        self.assertEqual([e["id"] for e in full], [2, 1])

        page = self.client.get("/api/diaries", params={"limit": "1"}).json()
        self.assertEqual(page["total"], 2)
        self.assertTrue(page["hasMore"])
        self.assertEqual(page["tagCounts"], [{"name": "旅行", "value": 2}, {"name": "美食", "value": 1}])
        self.assertEqual(page["dates"], ["2024-02-01", "2024-01-01"])

        second_page = self.client.get("/api/diaries", params={"limit": "1", "offset": "1"}).json()
        self.assertEqual([e["id"] for e in second_page["items"]], [1])
        self.assertNotIn("tagCounts", second_page)
        self.assertNotIn("dates", second_page)

        by_tag = self.client.get("/api/diaries", params={"tag": "美食"}).json()
        self.assertEqual([e["id"] for e in by_tag["items"]], [2])

    def test_pin_conflict_is_409(self):
        self._create(date="2024-01-01", pinned=True)
        other = self._create(date="2024-01-02")

        resp = self.client.put(f"/api/diaries/{other['id']}", json={"pinned": True})

        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.json()["code"], "PIN_CONFLICT")
        self.assertIn("id=1", resp.json()["detail"])

    def test_get_update_delete(self):
        created = self._create(date="2024-01-01", summary="old")

        updated = self.client.put(f"/api/diaries/{created['id']}", json={"summary": "new"}).json()
        self.assertEqual(updated["summary"], "new")
        self.assertEqual(self.client.get(f"/api/diaries/{created['id']}").json()["summary"], "new")

        self.assertEqual(self.client.delete(f"/api/diaries/{created['id']}").json(), {"ok": True})
        missing = self.client.get(f"/api/diaries/{created['id']}")
        self.assertEqual(missing.status_code, 404)
        self.assertEqual(missing.json()["code"], "NOT_FOUND")

    def test_bad_date_is_400(self):
        resp = self.client.post("/api/diaries", json={"date": "tomorrow"})

        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["code"], "VALIDATION_ERROR")

    def test_comments_round_trip(self):
        created = self.client.post("/api/diaries/3/comments", json={"author": "路人", "content": "赞"})
        self.assertEqual(created.status_code, 200)
        self.assertEqual(created.json()["diaryId"], 3)

        listed = self.client.get("/api/diaries/3/comments").json()
        self.assertEqual([c["content"] for c in listed], ["赞"])

        empty = self.client.post("/api/diaries/3/comments", json={"content": "  "})
        self.assertEqual(empty.status_code, 400)

    def test_profile_and_upload(self):
        self.assertEqual(self.client.get("/api/profile").json()["headerBg"], "/header-bg.png")

        saved = self.client.put("/api/profile", json={"headerBg": "/bg.png"}).json()
        self.assertEqual(saved["headerBg"], "/bg.png")

        upload = self.client.post(
            "/api/uploads",
            content=b"GIF89a" + b"\x00" * 16,
            headers={"content-type": "image/gif"},
        )
        self.assertEqual(upload.status_code, 200)
        self.assertTrue(upload.json()["urls"][0].endswith(".gif"))

        rejected = self.client.post("/api/uploads", content=b"%PDF", headers={"content-type": "application/pdf"})
        self.assertEqual(rejected.status_code, 400)

    def test_oversized_upload_is_rejected(self):
        _patch_settings(self, upload_max_bytes=64)

        resp = self.client.post(
            "/api/uploads",
            content=b"\x89PNG" + b"\x00" * 1024,
            headers={"content-type": "image/png"},
        )

        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["code"], "VALIDATION_ERROR")
        self.assertFalse(Path(settings.upload_dir).exists())


class AdminTokenTests(unittest.TestCase):
    def test_round_trip_and_rejections(self):
        token = issue_token(secret="s", pwd_version=3, days=1, now=1_000)

        self.assertEqual(verify_token(token, secret="s", expected_pwd_version=3, now=1_001), (True, "ok"))
        self.assertEqual(verify_token(None, secret="s", expected_pwd_version=3)[1], "missing")
        self.assertEqual(verify_token(token, secret="x", expected_pwd_version=3, now=1_001)[1], "bad_sig")
        self.assertEqual(
            verify_token(token, secret="s", expected_pwd_version=4, now=1_001)[1], "pwd_ver_mismatch"
        )
        self.assertEqual(
            verify_token(token, secret="s", expected_pwd_version=3, now=1_000 + 2 * 86400)[1], "expired"
        )
        self.assertEqual(verify_token("abc", secret="s", expected_pwd_version=3)[1], "format")

    def test_password_hash_verification(self):
        client_hash = sha256_hex("pw")
        stored = generate_admin_password_hash("pw", iterations=1_000)

        self.assertTrue(verify_admin_password_hash(client_hash, configured_hash=stored, plaintext=None))
        self.assertFalse(verify_admin_password_hash(sha256_hex("no"), configured_hash=stored, plaintext=None))
        self.assertTrue(verify_admin_password_hash(client_hash, configured_hash=None, plaintext="pw"))
        self.assertFalse(verify_admin_password_hash(client_hash, configured_hash=None, plaintext=None))
        self.assertFalse(verify_admin_password_hash("", configured_hash=None, plaintext="pw"))


if __name__ == "__main__":
    unittest.main()
