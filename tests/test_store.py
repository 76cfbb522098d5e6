import pytest

from zurl import models
from zurl.errors import ConflictError, NotFoundError, StoreError
from zurl.store import FOLDERS, LINKS


class TestReads:
    def test_get_missing_returns_none(self, store):
        assert store.get(LINKS, "missing") is None

    def test_query_none_matches_null(self, store, make_link, make_folder):
        make_folder("f1")
        make_link("a")
        make_link("b", folder_id="f1")
        make_link("c", owner_id="bob")
        assert [link.id for link in store.query(LINKS, owner_id="alice", folder_id=None)] == ["a"]
        assert [link.id for link in store.query(LINKS, folder_id="f1")] == ["b"]

    def test_count(self, store, make_link, make_folder):
        make_folder("f1")
        make_link("a", folder_id="f1")
        make_link("b", folder_id="f1")
        assert store.count(LINKS, folder_id="f1") == 2
        assert store.count(LINKS, folder_id="other") == 0

    def test_unknown_collection(self, store):
        with pytest.raises(ValueError):
            store.get("zaplinks", "x")


class TestSingleWrites:
    def test_set_then_get(self, store):
        store.set(FOLDERS, "f1", {"name": "Work", "owner_id": "alice"})
        folder = store.get(FOLDERS, "f1")
        assert folder.name == "Work"
        assert folder.created_at is not None

    def test_set_on_existing_document_merges(self, store, make_folder):
        make_folder("f1", owner_id="alice", name="Campaigns")
        created = store.get(FOLDERS, "f1").created_at
        store.set(FOLDERS, "f1", {"name": "Renamed"})
        folder = store.get(FOLDERS, "f1")
        assert folder.name == "Renamed"
        assert folder.owner_id == "alice"
        assert folder.created_at == created

    def test_update_missing_raises_not_found(self, store):
        with pytest.raises(NotFoundError):
            store.update(FOLDERS, "nope", {"name": "x"})

    def test_update_with_failed_precondition(self, store, make_link, make_folder):
        make_folder("f1")
        make_link("a", folder_id="f1")
        with pytest.raises(ConflictError):
            store.update(LINKS, "a", {"folder_id": None}, expect={"folder_id": "f2"})
        assert store.get(LINKS, "a").folder_id == "f1"

    def test_delete(self, store, make_folder):
        make_folder("f1")
        store.delete(FOLDERS, "f1")
        assert store.get(FOLDERS, "f1") is None

    def test_folder_with_members_cannot_be_deleted_alone(self, store, make_link, make_folder):
        make_folder("f1")
        make_link("a", folder_id="f1")
        with pytest.raises(StoreError):
            store.delete(FOLDERS, "f1")
        assert store.get(FOLDERS, "f1") is not None

    def test_partial_update_leaves_other_fields(self, store, make_link):
        make_link("a", click_count=3)
        store.update(LINKS, "a", {"name": "Spring"})
        link = store.get(LINKS, "a")
        assert link.name == "Spring"
        assert link.click_count == 3
        assert link.modified_at is not None


class TestBatch:
    def test_commits_all_mutations_together(self, store, make_link):
        make_link("a")
        make_link("b")
        batch = store.batch()
        batch.set(FOLDERS, "f1", {"name": "Work", "owner_id": "alice"})
        batch.update(LINKS, "a", {"folder_id": "f1"}, expect={"folder_id": None})
        batch.update(LINKS, "b", {"folder_id": "f1"}, expect={"folder_id": None})
        assert len(batch) == 3
        batch.commit()
        assert {link.id for link in store.query(LINKS, folder_id="f1")} == {"a", "b"}

    def test_missing_document_aborts_whole_batch(self, store, make_link, make_folder):
        make_folder("f1")
        make_link("a")
        batch = store.batch()
        batch.update(LINKS, "a", {"folder_id": "f1"})
        batch.update(LINKS, "ghost", {"folder_id": "f1"})
        with pytest.raises(NotFoundError):
            batch.commit()
        assert store.get(LINKS, "a").folder_id is None

    def test_failed_precondition_aborts_whole_batch(self, store, make_link, make_folder):
        make_folder("f1")
        make_folder("f2")
        make_link("a")
        make_link("b", folder_id="f2")
        batch = store.batch()
        batch.update(FOLDERS, "f1", {"name": "Renamed"})
        batch.update(LINKS, "a", {"folder_id": "f1"}, expect={"folder_id": None})
        batch.update(LINKS, "b", {"folder_id": "f1"}, expect={"folder_id": None})
        with pytest.raises(ConflictError):
            batch.commit()
        assert store.get(FOLDERS, "f1").name == "Campaigns"
        assert store.get(LINKS, "a").folder_id is None
        assert store.get(LINKS, "b").folder_id == "f2"

    def test_database_failure_becomes_store_error(self, store, make_link, db):
        make_link("a")
        batch = store.batch()
        batch.update(LINKS, "a", {"name": "renamed"})
        batch.set(FOLDERS, "f1", {"name": None, "owner_id": "alice"})
        with pytest.raises(StoreError):
            batch.commit()
        db.expire_all()
        assert db.get(models.ShortLink, "a").name is None
        assert db.get(models.Folder, "f1") is None

    def test_update_where(self, store, make_link, make_folder):
        make_folder("f1")
        make_link("a", folder_id="f1")
        make_link("b", folder_id="f1")
        make_link("c")
        store.batch().update_where(LINKS, {"folder_id": "f1"}, {"folder_id": None}).commit()
        assert store.count(LINKS, folder_id=None) == 3

    def test_commit_twice_is_an_error(self, store):
        batch = store.batch()
        batch.commit()
        with pytest.raises(RuntimeError):
            batch.commit()
