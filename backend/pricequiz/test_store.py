from __future__ import annotations

from unittest import IsolatedAsyncioTestCase

from pymongo.errors import ConnectionFailure

from backend.pricequiz import room as room_machine
from backend.pricequiz.db import InMemoryCollection
from backend.pricequiz.errors import ContentionError, NotJoinedError, RoomNotFoundError, StoreFault
from backend.pricequiz.models import GameStartedRoom, Question, RoomMember
from backend.pricequiz.store import RoomStore

ALICE = RoomMember(user_id="alice", display_name="Alice")
BOB = RoomMember(user_id="bob", display_name="Bob")


class _ConflictingCollection(InMemoryCollection):
    """Loses the first ``conflicts`` commits as if another writer got in first."""

    def __init__(self, conflicts: int):
        super().__init__()
        self.conflicts = conflicts
        self.replace_calls = 0

    async def find_one_and_replace(self, query, replacement, **kwargs):
        self.replace_calls += 1
        if self.conflicts > 0:
            self.conflicts -= 1
            return None
        return await super().find_one_and_replace(query, replacement, **kwargs)


class _UnreachableCollection(InMemoryCollection):
    async def find_one(self, query):
        raise ConnectionFailure("connection refused")


class RoomStoreTests(IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.collection = InMemoryCollection()
        self.store = RoomStore(self.collection, backoff_seconds=0)

    async def test_create_and_read_started_room(self):
        room = room_machine.join(room_machine.new_room(ALICE, 30, 1, 0.0), BOB)
        question = Question(title="Kettle", price=2980, image_url="https://img/k", link_url="https://shop/k")
        started = room_machine.start_game(room, [question], 100.0)
        started = room_machine.submit_answer(started, "alice", 0, 3000, 101.0)

        room_id = await self.store.create_room(started)
        loaded = await self.store.read_room(room_id)

        self.assertIsInstance(loaded, GameStartedRoom)
        self.assertEqual(loaded, started)
        self.assertEqual(loaded.answers, {"alice": {0: 3000}})
        doc = await self.collection.find_one({"_id": room_id})
        self.assertEqual(doc["version"], 1)

    async def test_create_generates_distinct_ids(self):
        room = room_machine.new_room(ALICE, 30, 1, 0.0)

        first = await self.store.create_room(room)
        second = await self.store.create_room(room)

        self.assertNotEqual(first, second)

    async def test_read_missing_room(self):
        with self.assertRaises(RoomNotFoundError):
            await self.store.read_room("missing")

    async def test_transaction_commits_and_bumps_version(self):
        room_id = await self.store.create_room(room_machine.new_room(ALICE, 30, 1, 0.0))

        async def _join(tx):
            tx.set(room_machine.join(await tx.get(), BOB))
            return "joined"

        self.assertEqual(await self.store.run_transaction(room_id, _join), "joined")

        doc = await self.collection.find_one({"_id": room_id})
        self.assertEqual(doc["version"], 2)
        self.assertEqual([m["user_id"] for m in doc["members"]], ["alice", "bob"])

    async def test_read_only_transaction_writes_nothing(self):
        room_id = await self.store.create_room(room_machine.new_room(ALICE, 30, 1, 0.0))

        async def _peek(tx):
            return len((await tx.get()).members)

        self.assertEqual(await self.store.run_transaction(room_id, _peek), 1)
        doc = await self.collection.find_one({"_id": room_id})
        self.assertEqual(doc["version"], 1)

    async def test_domain_error_aborts_without_writing(self):
        room_id = await self.store.create_room(room_machine.new_room(ALICE, 30, 1, 0.0))

        async def _leave_stranger(tx):
            tx.set(room_machine.leave(await tx.get(), "bob"))

        with self.assertRaises(NotJoinedError):
            await self.store.run_transaction(room_id, _leave_stranger)
        doc = await self.collection.find_one({"_id": room_id})
        self.assertEqual(doc["version"], 1)

    async def test_conflicts_are_retried_from_a_fresh_read(self):
        collection = _ConflictingCollection(conflicts=2)
        store = RoomStore(collection, max_attempts=5, backoff_seconds=0)
        room_id = await store.create_room(room_machine.new_room(ALICE, 30, 1, 0.0))
        calls = []

        async def _join(tx):
            calls.append(tx)
            tx.set(room_machine.join(await tx.get(), BOB))

        await store.run_transaction(room_id, _join)

        self.assertEqual(len(calls), 3)
        self.assertEqual(len({id(tx) for tx in calls}), 3)
        loaded = await store.read_room(room_id)
        self.assertEqual([m.user_id for m in loaded.members], ["alice", "bob"])

    async def test_exhausted_retries_raise_contention(self):
        collection = _ConflictingCollection(conflicts=10)
        store = RoomStore(collection, max_attempts=3, backoff_seconds=0)
        room_id = await store.create_room(room_machine.new_room(ALICE, 30, 1, 0.0))

        async def _join(tx):
            tx.set(room_machine.join(await tx.get(), BOB))

        with self.assertRaises(ContentionError):
            await store.run_transaction(room_id, _join)

        self.assertEqual(collection.replace_calls, 3)
        loaded = await store.read_room(room_id)
        self.assertEqual(loaded.members, [ALICE])

    async def test_explicit_max_attempts_is_honoured(self):
        for max_attempts in (1, 0):
            with self.subTest(max_attempts=max_attempts):
                collection = _ConflictingCollection(conflicts=10)
                store = RoomStore(collection, max_attempts=max_attempts, backoff_seconds=0)
                room_id = await store.create_room(room_machine.new_room(ALICE, 30, 1, 0.0))

                async def _join(tx):
                    tx.set(room_machine.join(await tx.get(), BOB))

                with self.assertRaises(ContentionError):
                    await store.run_transaction(room_id, _join)

                self.assertEqual(collection.replace_calls, max_attempts)

    async def test_operator_queries_are_refused(self):
        with self.assertRaises(ValueError):
            await self.collection.find_one({"version": {"$gt": 1}})

    async def test_stale_version_is_not_committed(self):
        room_id = await self.store.create_room(room_machine.new_room(ALICE, 30, 1, 0.0))
        attempts = []

        async def _join_after_interference(tx):
            room = await tx.get()
            attempts.append(len(room.members))
            if len(attempts) == 1:
                # Another writer commits between our read and our commit.
                async def _other(other_tx):
                    other_tx.set(room_machine.join(await other_tx.get(), BOB))

                await self.store.run_transaction(room_id, _other)
            tx.set(room_machine.join(room, RoomMember(user_id="carol", display_name="Carol")))

        await self.store.run_transaction(room_id, _join_after_interference)

        self.assertEqual(attempts, [1, 2])
        loaded = await self.store.read_room(room_id)
        self.assertEqual([m.user_id for m in loaded.members], ["alice", "bob", "carol"])

    async def test_corrupt_document_is_a_store_fault(self):
        await self.collection.insert_one({"_id": "broken", "version": 1, "status": "EXPLODED"})

        with self.assertRaises(StoreFault):
            await self.store.read_room("broken")

    async def test_driver_errors_are_store_faults(self):
        store = RoomStore(_UnreachableCollection(), backoff_seconds=0)

        with self.assertRaises(StoreFault):
            await store.read_room("anything")

    async def test_transaction_write_rules(self):
        room_id = await self.store.create_room(room_machine.new_room(ALICE, 30, 1, 0.0))

        async def _blind_write(tx):
            tx.set(room_machine.new_room(BOB, 30, 1, 0.0))

        async def _double_write(tx):
            room = await tx.get()
            tx.set(room)
            tx.set(room)

        with self.assertRaises(RuntimeError):
            await self.store.run_transaction(room_id, _blind_write)
        with self.assertRaises(RuntimeError):
            await self.store.run_transaction(room_id, _double_write)
