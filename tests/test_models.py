"""
Schema-level checks: column types per dialect and store-enforced constraints.
"""

from uuid import uuid4

import pytest
from pydantic import ValidationError
from sqlalchemy.dialects import mysql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.schema import CreateTable

from app.core.config import IMAGE_COLUMN_MAX_BYTES, Settings, settings
from app.models import FriendRequest, Message, User


def column_ddl(table, column: str, dialect) -> str:
    ddl = str(CreateTable(table).compile(dialect=dialect))
    return next(line.strip() for line in ddl.splitlines() if line.strip().startswith(column + " "))


class TestImagePayloadColumn:
    def test_mysql_column_holds_the_largest_allowed_payload(self):
        assert "MEDIUMTEXT" in column_ddl(Message.__table__, "image_payload", mysql.dialect())
        assert settings.image_payload_max_length <= IMAGE_COLUMN_MAX_BYTES

    def test_other_dialects_use_text(self):
        assert "TEXT" in column_ddl(Message.__table__, "image_payload", sqlite.dialect())

    def test_limit_above_column_capacity_is_rejected(self):
        with pytest.raises(ValidationError):
            Settings(image_payload_max_length=IMAGE_COLUMN_MAX_BYTES + 1)


class TestFriendRequestConstraints:
    async def test_unknown_status_is_rejected(self, db, alice: User, bob: User):
        db.add(FriendRequest(id=str(uuid4()), sender_id=alice.id, receiver_id=bob.id, status="blocked"))
        with pytest.raises(IntegrityError):
            await db.commit()
        await db.rollback()

    async def test_self_request_is_rejected(self, db, alice: User):
        db.add(FriendRequest(id=str(uuid4()), sender_id=alice.id, receiver_id=alice.id))
        with pytest.raises(IntegrityError):
            await db.commit()
        await db.rollback()
