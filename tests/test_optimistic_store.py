import asyncio
import copy
import time
import unittest

from studydeck.state.store import SUPERSEDED, MutationStatus, OptimisticStore


def items():
    return [
        {"id": "a1", "name": "Quiz 1", "score": None, "tags": ["x"]},
        {"id": "a2", "name": "Quiz 2", "score": 50, "tags": []},
    ]


class OptimisticStoreTests(unittest.IsolatedAsyncioTestCase):
    async def test_commit_keeps_local_change(self):
        store = OptimisticStore(items())
        calls = []
        revalidated = []

        def remote():
            calls.append("save")
            return {"success": True}

        result = await store.mutate("a1", lambda a: a.update(score=90), remote, lambda: revalidated.append(True))
        self.assertEqual(result.status, MutationStatus.COMMITTED)
        self.assertEqual(store.get("a1")["score"], 90)
        self.assertEqual(calls, ["save"])
        self.assertEqual(revalidated, [True])

    async def test_failure_envelope_restores_snapshot(self):
        store = OptimisticStore(items())
        before = store.items

        def change(item):
            item["score"] = 75
            item["tags"].append("y")

        result = await store.mutate("a1", change, lambda: {"success": False, "error": "Failed to save grade"})
        self.assertEqual(result.status, MutationStatus.ROLLED_BACK)
        self.assertEqual(result.error, "Failed to save grade")
        self.assertEqual(store.items, before)
        self.assertEqual(store.last_error, "Failed to save grade")

    async def test_exception_restores_snapshot(self):
        store = OptimisticStore(items())
        before = copy.deepcopy(store.items)

        async def remote():
            raise ConnectionError("network down")

        result = await store.mutate("a2", lambda a: a.update(score=10), remote)
        self.assertEqual(result.status, MutationStatus.ROLLED_BACK)
        self.assertEqual(result.error, "network down")
        self.assertEqual(store.items, before)

    async def test_change_visible_before_remote_finishes(self):
        store = OptimisticStore(items())
        gate = asyncio.Event()
        seen = []

        async def remote():
            seen.append(store.get("a1")["score"])
            await gate.wait()
            return {"success": True}

        task = asyncio.create_task(store.mutate("a1", lambda a: a.update(score=88), remote))
        await asyncio.sleep(0)
        self.assertEqual(store.get("a1")["score"], 88)
        gate.set()
        await task
        self.assertEqual(seen, [88])

    async def test_same_id_runs_in_order(self):
        store = OptimisticStore(items())
        order = []
        gate = asyncio.Event()

        async def slow():
            order.append("first-start")
            await gate.wait()
            order.append("first-end")
            return {"success": True}

        async def fast():
            order.append("second")
            return {"success": True}

        first = asyncio.create_task(store.mutate("a1", lambda a: a.update(score=1), slow))
        second = asyncio.create_task(store.mutate("a1", lambda a: a.update(score=2), fast))
        await asyncio.sleep(0)
        gate.set()
        results = await asyncio.gather(first, second)
        self.assertEqual(order, ["first-start", "first-end", "second"])
        self.assertTrue(all(r.status is MutationStatus.COMMITTED for r in results))
        self.assertEqual(store.get("a1")["score"], 2)

    async def test_failure_discards_queued_mutations(self):
        store = OptimisticStore(items())
        before = store.get("a1")
        gate = asyncio.Event()
        second_calls = []

        async def failing():
            await gate.wait()
            return {"success": False, "error": "boom"}

        def second_remote():
            second_calls.append(True)
            return {"success": True}

        first = asyncio.create_task(store.mutate("a1", lambda a: a.update(score=1), failing))
        second = asyncio.create_task(store.mutate("a1", lambda a: a.update(name="Renamed"), second_remote))
        await asyncio.sleep(0)
        self.assertEqual(store.get("a1")["name"], "Renamed")
        gate.set()
        first_result, second_result = await asyncio.gather(first, second)

        self.assertEqual(first_result.error, "boom")
        self.assertEqual(second_result.status, MutationStatus.ROLLED_BACK)
        self.assertEqual(second_result.error, SUPERSEDED)
        self.assertEqual(second_calls, [])
        self.assertEqual(store.get("a1"), before)

    async def test_other_ids_unaffected_by_failure(self):
        store = OptimisticStore(items())
        await store.mutate("a2", lambda a: a.update(score=99), lambda: {"success": True})
        await store.mutate("a1", lambda a: a.update(score=1), lambda: {"success": False, "error": "no"})
        self.assertEqual(store.get("a2")["score"], 99)
        self.assertIsNone(store.get("a1")["score"])

    async def test_unchanged_item_is_noop(self):
        store = OptimisticStore(items())
        calls = []
        result = await store.mutate("a2", lambda a: a.update(score=50), lambda: calls.append(1))
        self.assertEqual(result.status, MutationStatus.NOOP)
        self.assertEqual(calls, [])

    async def test_batch_rolls_back_together(self):
        store = OptimisticStore(items())
        before = store.items
        result = await store.mutate_many(
            {"a1": lambda a: a.update(score=1), "a2": lambda a: a.update(score=2)},
            lambda: {"success": False, "error": "Failed to reorder tasks"},
        )
        self.assertEqual(result.item_ids, ("a1", "a2"))
        self.assertEqual(store.items, before)

    async def test_unknown_id(self):
        store = OptimisticStore(items())
        with self.assertRaises(KeyError):
            await store.mutate("missing", lambda a: None, lambda: {"success": True})

    async def test_items_are_copies(self):
        store = OptimisticStore(items())
        store.items[0]["score"] = 1000
        store.get("a1")["tags"].append("leak")
        self.assertIsNone(store.get("a1")["score"])
        self.assertEqual(store.get("a1")["tags"], ["x"])

    async def test_queued_batch_restores_other_ids_after_failure(self):
        store = OptimisticStore(items())
        before = store.items
        gate = asyncio.Event()
        batch_calls = []

        async def failing():
            await gate.wait()
            return {"success": False, "error": "Failed to save grade"}

        def batch_remote():
            batch_calls.append(True)
            return {"success": True}

        edit = asyncio.create_task(store.mutate("a1", lambda a: a.update(score=40), failing))
        await asyncio.sleep(0)
        reorder = asyncio.create_task(
            store.mutate_many(
                {"a1": lambda a: a.update(name="Moved 1"), "a2": lambda a: a.update(name="Moved 2")},
                batch_remote,
            )
        )
        await asyncio.sleep(0)
        self.assertEqual(store.get("a2")["name"], "Moved 2")
        gate.set()
        edit_result, reorder_result = await asyncio.gather(edit, reorder)

        self.assertEqual(edit_result.error, "Failed to save grade")
        self.assertEqual(reorder_result.status, MutationStatus.ROLLED_BACK)
        self.assertEqual(reorder_result.error, SUPERSEDED)
        self.assertEqual(batch_calls, [])
        self.assertEqual(store.items, before)

    async def test_blocking_remote_runs_off_the_loop(self):
        store = OptimisticStore(items())
        ticks = []

        def slow_remote():
            time.sleep(0.2)
            return {"success": True}

        async def ticker():
            while True:
                ticks.append(1)
                await asyncio.sleep(0.01)

        background = asyncio.create_task(ticker())
        try:
            result = await store.mutate("a1", lambda a: a.update(score=70), slow_remote)
        finally:
            background.cancel()
        self.assertEqual(result.status, MutationStatus.COMMITTED)
        self.assertGreater(len(ticks), 5)

    async def test_replace_all_drops_bookkeeping_for_removed_ids(self):
        store = OptimisticStore(items())
        await store.mutate("a1", lambda a: a.update(score=1), lambda: {"success": False, "error": "no"})
        await store.mutate("a2", lambda a: a.update(score=2), lambda: {"success": True})
        store.replace_all([{"id": "a2", "name": "Quiz 2", "score": 2, "tags": []}])
        self.assertNotIn("a1", store._locks)
        self.assertNotIn("a1", store._epochs)
        self.assertIn("a2", store._locks)


if __name__ == "__main__":
    unittest.main()
