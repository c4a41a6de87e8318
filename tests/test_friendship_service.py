"""
Tests for FriendshipService.

These tests verify:
- request validation (unknown user, self request, already friends, duplicates)
- receiver-only accept/decline and the pending -> accepted/declined transitions
- symmetric friend lists and one friendship row per pair
- a concurrent double accept yields exactly one friendship
"""

import asyncio
from uuid import uuid4

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, OperationalError

from app.core.errors import ConflictError, InvalidInputError, NotFoundError, StoreFailureError
from app.models import FriendRequest, Friendship, User
from app.models.friend import pair_key
from app.services.crud import FriendshipCRUD
from app.services.friendship_service import FriendshipService


async def friendship_rows(session_factory) -> int:
    async with session_factory() as session:
        return (await session.execute(select(func.count()).select_from(Friendship))).scalar_one()


class TestSendRequest:
    async def test_creates_pending_request(self, db, alice: User, bob: User):
        request = await FriendshipService(db).send_request(alice.id, "bob")

        assert request.status == "pending"
        assert request.sender_id == alice.id
        assert request.receiver_id == bob.id
        assert request.pending_key == pair_key(alice.id, bob.id)

    async def test_unknown_username(self, db, alice: User):
        with pytest.raises(NotFoundError) as exc:
            await FriendshipService(db).send_request(alice.id, "ghost")
        assert exc.value.code == "USER_NOT_FOUND"

    async def test_self_request_is_invalid(self, db, alice: User):
        with pytest.raises(InvalidInputError) as exc:
            await FriendshipService(db).send_request(alice.id, "alice")
        assert exc.value.code == "SELF_REQUEST"

    async def test_duplicate_from_same_sender(self, db, alice: User, bob: User):
        service = FriendshipService(db)
        first = await service.send_request(alice.id, "bob")

        with pytest.raises(ConflictError) as exc:
            await service.send_request(alice.id, "bob")

        assert exc.value.code == "DUPLICATE_PENDING"
        assert exc.value.message == "You have already sent a friend request."
        assert exc.value.details == {"request_id": first.id, "direction": "outgoing"}

    async def test_duplicate_from_other_side(self, db, alice: User, bob: User):
        service = FriendshipService(db)
        await service.send_request(alice.id, "bob")

        with pytest.raises(ConflictError) as exc:
            await service.send_request(bob.id, "alice")

        assert exc.value.code == "DUPLICATE_PENDING"
        assert "already sent you" in exc.value.message
        assert exc.value.details["direction"] == "incoming"

    async def test_already_friends(self, db, alice: User, bob: User):
        service = FriendshipService(db)
        request = await service.send_request(alice.id, "bob")
        await service.accept_request(request.id, bob.id)

        for sender, target in ((alice, "bob"), (bob, "alice")):
            with pytest.raises(ConflictError) as exc:
                await service.send_request(sender.id, target)
            assert exc.value.code == "ALREADY_FRIENDS"

    async def test_new_request_allowed_after_decline(self, db, alice: User, bob: User):
        service = FriendshipService(db)
        first = await service.send_request(alice.id, "bob")
        await service.decline_request(first.id, bob.id)

        again = await service.send_request(alice.id, "bob")
        assert again.id != first.id
        assert again.status == "pending"

        await service.decline_request(again.id, bob.id)
        reverse = await service.send_request(bob.id, "alice")
        assert reverse.status == "pending"

    async def test_store_rejects_second_pending_row_for_pair(self, db, alice: User, bob: User):
        db.add_all([
            FriendRequest(id=str(uuid4()), sender_id=alice.id, receiver_id=bob.id,
                          pending_key=pair_key(alice.id, bob.id)),
            FriendRequest(id=str(uuid4()), sender_id=bob.id, receiver_id=alice.id,
                          pending_key=pair_key(bob.id, alice.id)),
        ])
        with pytest.raises(IntegrityError):
            await db.commit()
        await db.rollback()

    async def test_constraint_violation_maps_to_conflict(self, db, alice: User, bob: User, monkeypatch):
        service = FriendshipService(db)
        await service.send_request(alice.id, "bob")

        # simulate a concurrent request that the duplicate read did not see
        async def no_pending(*args, **kwargs):
            return None

        monkeypatch.setattr(FriendshipCRUD, "get_pending_between", staticmethod(no_pending))

        with pytest.raises(ConflictError) as exc:
            await service.send_request(bob.id, "alice")
        assert exc.value.code == "ALREADY_EXISTS"


class TestListRequests:
    async def test_incoming_newest_first_with_sender(self, db, alice: User, bob: User, carol: User):
        service = FriendshipService(db)
        from_alice = await service.send_request(alice.id, "carol")
        await asyncio.sleep(0.01)
        from_bob = await service.send_request(bob.id, "carol")

        incoming = await service.list_incoming_requests(carol.id)

        assert [r.request_id for r in incoming] == [from_bob.id, from_alice.id]
        assert incoming[0].sender.username == "bob"
        assert incoming[0].sender.display_name == "Bob"

    async def test_incoming_excludes_processed(self, db, alice: User, bob: User, carol: User):
        service = FriendshipService(db)
        accepted = await service.send_request(alice.id, "carol")
        declined = await service.send_request(bob.id, "carol")
        await service.accept_request(accepted.id, carol.id)
        await service.decline_request(declined.id, carol.id)

        assert await service.list_incoming_requests(carol.id) == []

    async def test_outgoing(self, db, alice: User, bob: User):
        service = FriendshipService(db)
        request = await service.send_request(alice.id, "bob")

        outgoing = await service.list_outgoing_requests(alice.id)

        assert [r.request_id for r in outgoing] == [request.id]
        assert outgoing[0].receiver.username == "bob"
        assert await service.list_outgoing_requests(bob.id) == []


class TestAcceptDecline:
    async def test_accept_creates_symmetric_friendship(self, db, session_factory, alice: User, bob: User):
        service = FriendshipService(db)
        request = await service.send_request(alice.id, "bob")

        accepted = await service.accept_request(request.id, bob.id)

        assert accepted.status == "accepted"
        assert accepted.pending_key is None
        assert [u.id for u in await service.list_friends(alice.id)] == [bob.id]
        assert [u.id for u in await service.list_friends(bob.id)] == [alice.id]
        assert await service.are_friends(bob.id, alice.id)
        assert await friendship_rows(session_factory) == 1

    async def test_sender_cannot_accept(self, db, session_factory, alice: User, bob: User):
        service = FriendshipService(db)
        request_id = (await service.send_request(alice.id, "bob")).id

        with pytest.raises(NotFoundError):
            await service.accept_request(request_id, alice.id)

        assert await friendship_rows(session_factory) == 0
        assert [r.request_id for r in await service.list_incoming_requests(bob.id)] == [request_id]

    async def test_third_party_cannot_decline(self, db, alice: User, bob: User, carol: User):
        service = FriendshipService(db)
        request = await service.send_request(alice.id, "bob")

        with pytest.raises(NotFoundError):
            await service.decline_request(request.id, carol.id)

    async def test_unknown_request(self, db, bob: User):
        with pytest.raises(NotFoundError) as exc:
            await FriendshipService(db).accept_request("missing", bob.id)
        assert exc.value.code == "REQUEST_NOT_FOUND"

    async def test_accept_after_decline_fails(self, db, session_factory, alice: User, bob: User):
        service = FriendshipService(db)
        request = await service.send_request(alice.id, "bob")
        declined = await service.decline_request(request.id, bob.id)
        assert declined.status == "declined"

        with pytest.raises(NotFoundError):
            await service.accept_request(request.id, bob.id)
        assert await friendship_rows(session_factory) == 0
        assert await service.list_friends(alice.id) == []

    async def test_second_accept_fails(self, db, alice: User, bob: User):
        service = FriendshipService(db)
        request = await service.send_request(alice.id, "bob")
        await service.accept_request(request.id, bob.id)

        with pytest.raises(NotFoundError):
            await service.accept_request(request.id, bob.id)

    async def test_concurrent_double_accept(
        self, session_factory, immediate_session_factory, alice: User, bob: User
    ):
        async with session_factory() as session:
            request = await FriendshipService(session).send_request(alice.id, "bob")

        async def accept():
            async with immediate_session_factory() as session:
                return await FriendshipService(session).accept_request(request.id, bob.id)

        results = await asyncio.gather(accept(), accept(), return_exceptions=True)

        successes = [r for r in results if isinstance(r, FriendRequest)]
        failures = [r for r in results if isinstance(r, NotFoundError)]
        assert len(successes) == 1, results
        assert len(failures) == 1, results
        assert await friendship_rows(session_factory) == 1

    @pytest.mark.parametrize(
        "failure, expected",
        [
            (OperationalError("COMMIT", {}, Exception("disk I/O error")), StoreFailureError),
            (IntegrityError("INSERT INTO friendships", {}, Exception("UNIQUE")), ConflictError),
        ],
    )
    async def test_failed_accept_leaves_request_pending(
        self, db, session_factory, alice: User, bob: User, monkeypatch, failure, expected
    ):
        service = FriendshipService(db)
        request_id = (await service.send_request(alice.id, "bob")).id

        async def failing_commit():
            # both writes reach the transaction before the commit fails
            await db.flush()
            raise failure

        monkeypatch.setattr(db, "commit", failing_commit)

        with pytest.raises(expected):
            await service.accept_request(request_id, bob.id)

        async with session_factory() as session:
            stored = await session.get(FriendRequest, request_id)
            assert stored.status == "pending"
            assert stored.pending_key == pair_key(alice.id, bob.id)
        assert await friendship_rows(session_factory) == 0

        monkeypatch.undo()
        accepted = await service.accept_request(request_id, bob.id)
        assert accepted.status == "accepted"
        assert await friendship_rows(session_factory) == 1

    async def test_friend_list_excludes_self_and_strangers(self, db, alice: User, bob: User, carol: User):
        service = FriendshipService(db)
        request = await service.send_request(alice.id, "bob")
        await service.accept_request(request.id, bob.id)
        await service.send_request(carol.id, "alice")  # still pending

        friends = await service.list_friends(alice.id)
        assert [u.username for u in friends] == ["bob"]
