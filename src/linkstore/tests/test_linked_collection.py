import itertools
import time
import unittest
from unittest import mock

from linkstore.config import StoreConfig
from linkstore.datastore import DataStore
from linkstore.errors import ConfigurationError, RelationLookupError
from linkstore.linked_collection import LinkedCollection
from linkstore.mapper import Mapper
from linkstore.record import Record
from linkstore.relations import belongs_to, has_many, has_one


def build_store(config=None) -> DataStore:
    store = DataStore(config)
    store.define_mapper(
        "author",
        relations=[
            has_many("post", local_field="posts", foreign_key="author_id", local_keys="post_ids")
        ],
    )
    store.define_mapper(
        "post",
        relations=[
            belongs_to("author", local_field="author", foreign_key="author_id"),
            has_many("comment", local_field="comments", foreign_key="post_id"),
        ],
    )
    store.define_mapper("comment")
    return store


def counting_clock(start: int = 1000):
    counter = itertools.count(start)
    return lambda: next(counter)


class TestConstruction(unittest.TestCase):
    def test_requires_datastore(self) -> None:
        with self.assertRaisesRegex(ConfigurationError, "must have a datastore"):
            LinkedCollection(mapper=Mapper("post"))

    def test_initial_records(self) -> None:
        store = build_store()
        collection = LinkedCollection(
            [{"id": 1}, {"id": 2}], datastore=store, mapper=Mapper("draft")
        )
        self.assertEqual(len(collection), 2)
        self.assertEqual(set(collection.added), {1, 2})

    def test_extend_binds_members(self) -> None:
        store = build_store()
        Drafts = LinkedCollection.extend(
            "DraftCollection",
            datastore=store,
            mapper=Mapper("draft"),
            titles=lambda self: [record["title"] for record in self],
        )
        drafts = Drafts()
        drafts.add({"id": 1, "title": "A"})
        self.assertEqual(drafts.titles(), ["A"])
        self.assertIs(drafts.datastore, store)
        self.assertIsInstance(drafts, LinkedCollection)


class TestAdd(unittest.TestCase):
    def setUp(self) -> None:
        self.store = build_store()
        self.authors = self.store.get_collection("author")
        self.posts = self.store.get_collection("post")
        self.comments = self.store.get_collection("comment")

    def test_singular_in_singular_out(self) -> None:
        single = self.posts.add({"id": 1, "title": "A"})
        self.assertIsInstance(single, Record)
        batch = self.posts.add([{"id": 2, "title": "B"}])
        self.assertIsInstance(batch, list)
        self.assertEqual(len(batch), 1)
        self.assertEqual(self.posts.add([]), [])

    def test_belongs_to_propagation(self) -> None:
        post = self.posts.add({"id": 1, "title": "A", "author": {"id": 5, "name": "X"}})
        self.assertIn(5, self.authors)
        self.assertEqual(post["author_id"], 5)
        self.assertIs(post["author"], self.authors.get(5))
        self.assertEqual(self.authors.get(5)["name"], "X")

    def test_has_many_with_local_keys(self) -> None:
        author = self.authors.add(
            {"id": 5, "posts": [{"id": 10, "title": "P"}, {"id": 11, "title": "Q"}]}
        )
        self.assertEqual(self.posts.get(10)["author_id"], 5)
        self.assertEqual(self.posts.get(11)["author_id"], 5)
        self.assertEqual(author["post_ids"], [10, 11])
        self.assertIs(author["posts"][0], self.posts.get(10))
        self.assertIs(author["posts"][1], self.posts.get(11))

    def test_nested_relations_recurse_depth_first(self) -> None:
        self.authors.add(
            {
                "id": 5,
                "posts": [{"id": 10, "comments": [{"id": 100}, {"id": 101}]}],
            }
        )
        self.assertEqual(self.comments.get(100)["post_id"], 10)
        self.assertEqual(self.comments.get(101)["post_id"], 10)
        self.assertIs(self.posts.get(10)["comments"][1], self.comments.get(101))

    def test_stored_related_item_is_not_relinked(self) -> None:
        store = build_store(StoreConfig(clock=counting_clock()))
        authors = store.get_collection("author")
        posts = store.get_collection("post")
        stored_post = posts.add({"id": 10, "author_id": 7})
        stamped = posts.linked_at(10)

        author = authors.add({"id": 5, "posts": [stored_post]})

        self.assertEqual(stored_post["author_id"], 7)
        self.assertEqual(posts.linked_at(10), stamped)
        self.assertIs(author["posts"][0], stored_post)
        self.assertEqual(author["post_ids"], [10])

    def test_stored_parent_is_shared_without_reinsert(self) -> None:
        store = build_store(StoreConfig(clock=counting_clock()))
        authors = store.get_collection("author")
        posts = store.get_collection("post")
        author = authors.add({"id": 5, "name": "X"})
        stamped = authors.linked_at(5)

        first, second = posts.add([{"id": 1, "author": author}, {"id": 2, "author": author}])

        self.assertEqual(authors.linked_at(5), stamped)
        self.assertIs(first["author"], author)
        self.assertIs(second["author"], author)
        self.assertNotIn("author_id", first)

    def test_unstored_copy_is_merged_into_stored_record(self) -> None:
        author = self.authors.add({"id": 5, "name": "X"})
        post = self.posts.add({"id": 1, "author": {"id": 5, "name": "Y"}})
        self.assertIs(post["author"], author)
        self.assertEqual(author["name"], "Y")
        self.assertEqual(post["author_id"], 5)

    def test_has_one_writes_key_on_related_item(self) -> None:
        store = DataStore()
        store.define_mapper(
            "user", relations=[has_one("profile", local_field="profile", foreign_key="user_id")]
        )
        store.define_mapper("profile")
        user = store.add("user", {"id": 1, "profile": {"id": 9, "bio": "hi"}})
        profile = store.get("profile", 9)
        self.assertEqual(profile["user_id"], 1)
        self.assertIs(user["profile"], profile)
        self.assertNotIn("user_id", user)

    def test_auto_insert_false_only_writes_foreign_keys(self) -> None:
        store = DataStore()
        store.define_mapper(
            "author",
            relations=[
                has_many(
                    "post",
                    local_field="posts",
                    foreign_key="author_id",
                    local_keys="post_ids",
                    auto_insert=False,
                )
            ],
        )
        store.define_mapper(
            "post",
            relations=[
                belongs_to("author", local_field="author", foreign_key="author_id", auto_insert=False)
            ],
        )
        item = {"id": 10}
        author = store.add("author", {"id": 5, "posts": [item]})
        self.assertEqual(item["author_id"], 5)
        self.assertIsNone(store.get("post", 10))
        self.assertIs(author["posts"][0], item)
        self.assertEqual(author["post_ids"], [10])

        post = store.add("post", {"id": 11, "author": {"id": 6}})
        self.assertEqual(post["author_id"], 6)
        self.assertIsNone(store.get("author", 6))

    def test_falsy_scalar_local_field_is_skipped(self) -> None:
        for value in (0, False, ""):
            post = self.posts.add({"id": 1, "author": value})
            self.assertEqual(post["author"], value)
            self.assertNotIn("author_id", post)
            self.posts.remove(1)
        self.assertEqual(len(self.authors), 0)

    def test_empty_has_many_still_sets_local_keys(self) -> None:
        author = self.authors.add({"id": 5, "posts": []})
        self.assertEqual(author["post_ids"], [])
        self.assertEqual(author["posts"], [])
        self.assertEqual(len(self.posts), 0)

    def test_missing_foreign_key_writes_nothing(self) -> None:
        store = DataStore()
        store.define_mapper(
            "post", relations=[has_many("comment", local_field="comments")]
        )
        store.define_mapper("comment")
        store.add("post", {"id": 1, "comments": [{"id": 2}]})
        self.assertEqual(store.get("comment", 2).to_dict(), {"id": 2})

    def test_custom_insert_strategy_replaces_default(self) -> None:
        calls = []

        def insert_tags(datastore, definition, record):
            calls.append((datastore, definition, record))

        store = DataStore()
        store.define_mapper(
            "post",
            relations=[has_many("tag", local_field="tags", foreign_key="post_id", custom_insert=insert_tags)],
        )
        store.define_mapper("tag")
        post = store.add("post", {"id": 1, "tags": [{"id": 3}]})
        store.add("post", {"id": 2})

        self.assertEqual(len(calls), 1)
        datastore, definition, record = calls[0]
        self.assertIs(datastore, store)
        self.assertEqual(definition.local_field, "tags")
        self.assertEqual(record["id"], 1)
        self.assertIsNone(store.get("tag", 3))
        self.assertNotIn("post_id", post["tags"][0])

    def test_unknown_related_mapper_propagates(self) -> None:
        store = DataStore()
        store.define_mapper(
            "post", relations=[belongs_to("writer", local_field="writer", foreign_key="writer_id")]
        )
        with self.assertRaisesRegex(RelationLookupError, "Unknown mapper: writer"):
            store.add("post", {"id": 1, "writer": {"id": 2}})
        # The related mapper is resolved before any record is inspected.
        with self.assertRaises(RelationLookupError):
            store.add("post", {"id": 3})
        self.assertEqual(len(store.get_collection("post")), 0)

    def test_relations_follow_declaration_order(self) -> None:
        seen = []
        store = DataStore()
        store.define_mapper(
            "post",
            relations=[
                belongs_to("author", local_field="author", foreign_key="author_id"),
                has_many("comment", local_field="comments", foreign_key="post_id"),
            ],
        )
        store.define_mapper("author")
        store.define_mapper("comment")
        store.get_collection("author").on(lambda event: seen.append(("author", event.kind)))
        store.get_collection("comment").on(lambda event: seen.append(("comment", event.kind)))
        store.add(
            "post",
            [
                {"id": 1, "author": {"id": 5}, "comments": [{"id": 9}]},
                {"id": 2, "author": {"id": 6}},
            ],
        )
        self.assertEqual([name for name, _ in seen], ["author", "author", "comment"])
        self.assertEqual(
            [record["id"] for record in store.get_collection("author")], [5, 6]
        )


class TestTimestamps(unittest.TestCase):
    def test_lifecycle(self) -> None:
        store = build_store()
        posts = store.get_collection("post")
        before = time.time_ns() // 1_000_000
        post = posts.add({"id": 1})
        self.assertGreaterEqual(posts.added[1], before)
        self.assertEqual(post.linked_at, posts.added[1])

        removed = posts.remove(1)
        self.assertIs(removed, post)
        self.assertNotIn(1, posts.added)
        self.assertIsNone(post.linked_at)
        self.assertIsNone(posts.remove(1))

    def test_reinsert_overwrites_stamp(self) -> None:
        store = build_store(StoreConfig(clock=counting_clock()))
        posts = store.get_collection("post")
        posts.add({"id": 1})
        first = posts.linked_at(1)
        posts.add({"id": 1, "title": "again"})
        self.assertGreater(posts.linked_at(1), first)

    def test_batch_shares_one_stamp(self) -> None:
        store = build_store(StoreConfig(clock=counting_clock()))
        posts = store.get_collection("post")
        posts.add([{"id": 1}, {"id": 2}])
        self.assertEqual(posts.linked_at(1), posts.linked_at(2))

    def test_remove_all_only_drops_matched(self) -> None:
        store = build_store()
        posts = store.get_collection("post")
        posts.add([{"id": 1, "draft": True}, {"id": 2, "draft": False}, {"id": 3, "draft": True}])
        removed = posts.remove_all({"draft": True})
        self.assertEqual([record["id"] for record in removed], [1, 3])
        self.assertEqual(set(posts.added), {2})

    def test_plain_records_get_no_metadata(self) -> None:
        store = DataStore()
        store.define_mapper("note", record_class=None)
        note = store.add("note", {"id": 1})
        self.assertIs(type(note), dict)
        self.assertIn(1, store.get_collection("note").added)
        self.assertIs(store.remove("note", 1), note)


class TestReindexHook(unittest.TestCase):
    def setUp(self) -> None:
        self.store = build_store()
        self.posts = self.store.get_collection("post")
        self.posts.create_index("by_status", ["status"])

    def test_field_change_reindexes_once(self) -> None:
        post = self.posts.add({"id": 1, "status": "draft", "title": "A"})
        with mock.patch.object(self.posts, "update_indexes", wraps=self.posts.update_indexes) as spy:
            post.update(status="live", title="B")
        spy.assert_called_once_with(post)

    def test_merge_reinsert_reindexes_once(self) -> None:
        post = self.posts.add({"id": 1, "status": "a"})
        with mock.patch.object(self.posts, "update_indexes", wraps=self.posts.update_indexes) as spy:
            again = self.posts.add({"id": 1, "status": "b"})
        self.assertIs(again, post)
        spy.assert_called_once_with(post)
        self.assertEqual(self.posts.get_all("b", index="by_status"), [post])

    def test_index_follows_changes(self) -> None:
        post = self.posts.add({"id": 1, "status": "draft"})
        post["status"] = "live"
        self.assertEqual(self.posts.get_all("draft", index="by_status"), [])
        self.assertEqual(self.posts.get_all("live", index="by_status"), [post])

    def test_removed_records_are_not_tracked(self) -> None:
        post = self.posts.add({"id": 1, "status": "draft"})
        self.posts.remove(1)
        with mock.patch.object(self.posts, "update_indexes") as spy:
            post["status"] = "live"
        spy.assert_not_called()


class TestCycleGuard(unittest.TestCase):
    def _cyclic_post(self) -> dict:
        post = {"id": 1, "title": "A"}
        author = {"id": 5, "posts": [post]}
        post["author"] = author
        return post

    def test_guard_turns_revisit_into_noop(self) -> None:
        store = build_store(StoreConfig(guard_cycles=True))
        post = store.add("post", self._cyclic_post())
        author = store.get("author", 5)
        self.assertIs(post["author"], author)
        self.assertEqual(post["author_id"], 5)
        self.assertEqual(author["post_ids"], [1])
        self.assertIs(store.get("post", 1), post)
        self.assertEqual(store.inflight, set())
        # The skipped revisit keeps the object that was passed in.
        self.assertIsNot(author["posts"][0], post)
        self.assertEqual(author["posts"][0]["id"], 1)
        self.assertEqual(author["posts"][0]["author_id"], 5)

    def test_unguarded_cycle_recurses(self) -> None:
        store = build_store()
        with self.assertRaises(RecursionError):
            store.add("post", self._cyclic_post())


if __name__ == "__main__":
    unittest.main()
