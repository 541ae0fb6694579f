from __future__ import annotations

import sys
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from rhapsody.database import Base
from rhapsody.models import Comment
from rhapsody.schemas import ProfileUpdateRequest
from rhapsody.services.comments import AUTHOR_MAX_LEN, CONTENT_MAX_LEN, DEFAULT_AUTHOR, CommentService
from rhapsody.services.profile import DEFAULT_PROFILE, ProfileService
from rhapsody.utils.errors import ValidationError


class _DbTestCase(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.engine = create_async_engine(
            "sqlite+aiosqlite:///:memory:",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        self.session_factory = async_sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False
        )
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def asyncTearDown(self):
        await self.engine.dispose()


class CommentServiceTests(_DbTestCase):
    async def test_append_then_list(self):
        async with self.session_factory() as session:
            created = await CommentService(session).append(7, "  小明 ", "  写得真好  ")

        async with self.session_factory() as session:
            comments = await CommentService(session).list(7)

        self.assertEqual(len(comments), 1)
        self.assertEqual(comments[0].id, created.id)
        self.assertEqual(comments[0].author, "小明")
        self.assertEqual(comments[0].content, "写得真好")
        self.assertEqual(comments[0].diary_id, 7)
        self.assertEqual(comments[0].created_at.tzinfo, timezone.utc)

    async def test_comments_are_scoped_per_diary(self):
        async with self.session_factory() as session:
            service = CommentService(session)
            await service.append(1, None, "one")
            await service.append(2, None, "two")
            self.assertEqual([c.content for c in await service.list(1)], ["one"])
            self.assertEqual(await service.list(3), [])

    async def test_empty_content_is_rejected(self):
        async with self.session_factory() as session:
            service = CommentService(session)
            for content in ("", "   ", None):
                with self.subTest(content=content):
                    with self.assertRaises(ValidationError):
                        await service.append(1, "a", content)
            self.assertEqual(await service.list(1), [])

    async def test_author_default_and_truncation(self):
        async with self.session_factory() as session:
            service = CommentService(session)
            anonymous = await service.append(1, "   ", "hi")
            long_one = await service.append(1, "a" * 200, "b" * 5000)

        self.assertEqual(anonymous.author, DEFAULT_AUTHOR)
        self.assertEqual(len(long_one.author), AUTHOR_MAX_LEN)
        self.assertEqual(len(long_one.content), CONTENT_MAX_LEN)

    async def test_list_is_oldest_first(self):
        base = datetime(2024, 1, 1, tzinfo=timezone.utc)
        async with self.session_factory() as session:
            for i, offset in enumerate((3, 1, 2)):
                session.add(
                    Comment(
                        id=f"c{i}",
                        diary_id=5,
                        author="x",
                        content=f"m{offset}",
                        created_at=base + timedelta(minutes=offset),
                    )
                )
            await session.commit()

            comments = await CommentService(session).list(5)

        self.assertEqual([c.content for c in comments], ["m1", "m2", "m3"])

    async def test_response_uses_camel_case(self):
        async with self.session_factory() as session:
            created = await CommentService(session).append(9, "a", "b")

        payload = created.model_dump(by_alias=True)
        self.assertIn("diaryId", payload)
        self.assertIn("createdAt", payload)


class ProfileServiceTests(_DbTestCase):
    async def test_defaults_without_saved_profile(self):
        async with self.session_factory() as session:
            profile = await ProfileService(session).get()

        self.assertEqual(profile.model_dump(), DEFAULT_PROFILE)

    async def test_saved_fields_override_defaults(self):
        async with self.session_factory() as session:
            await ProfileService(session).save(ProfileUpdateRequest(name="Rhapsody", header_bg="/bg2.png"))

        async with self.session_factory() as session:
            profile = await ProfileService(session).get()

        self.assertEqual(profile.name, "Rhapsody")
        self.assertEqual(profile.header_bg, "/bg2.png")
        self.assertEqual(profile.signature, DEFAULT_PROFILE["signature"])

    async def test_partial_save_keeps_other_fields(self):
        async with self.session_factory() as session:
            service = ProfileService(session)
            await service.save(ProfileUpdateRequest(name="A", location="上海"))
            saved = await service.save(ProfileUpdateRequest.model_validate({"headerBg": "/h.png"}))

        self.assertEqual(saved.name, "A")
        self.assertEqual(saved.location, "上海")
        self.assertEqual(saved.header_bg, "/h.png")

    async def test_empty_string_falls_back_to_default(self):
        async with self.session_factory() as session:
            saved = await ProfileService(session).save(ProfileUpdateRequest(avatar=""))

        self.assertEqual(saved.avatar, DEFAULT_PROFILE["avatar"])


if __name__ == "__main__":
    unittest.main()
