"""Folder membership for short links.

A link sits in at most one folder, recorded only on the link
(``ShortLink.folder_id``). Every operation that touches more than one
document goes through a single store batch, and link reassignments carry a
precondition on the link's current folder so a concurrent move aborts the
batch instead of being overwritten.
"""
import logging
import uuid
from collections.abc import Iterable
from datetime import datetime, timezone

from zurl import schemas
from zurl.errors import ConflictError, NotFoundError, ValidationError
from zurl.store import FOLDERS, LINKS, DocumentStore

logger = logging.getLogger("zurl.folders")


def clean_name(name: str | None) -> str:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Folder name cannot be empty")
    return name


def _unique(ids: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(ids))


class FolderCoordinator:
    def __init__(self, store: DocumentStore):
        self.store = store

    # ---------- reads ----------

    def get_folder(self, folder_id: str, owner_id: str | None = None) -> schemas.FolderRecord:
        folder = self.store.get(FOLDERS, folder_id)
        if folder is None or (owner_id is not None and folder.owner_id != owner_id):
            raise NotFoundError(f"Folder {folder_id!r} not found")
        return folder

    def _get_link(self, link_id: str, owner_id: str | None) -> schemas.ShortLinkRecord:
        link = self.store.get(LINKS, link_id)
        if link is None or (owner_id is not None and link.owner_id != owner_id):
            raise NotFoundError(f"Short link {link_id!r} not found")
        return link

    def list_folders(self, owner_id: str) -> list[schemas.FolderRecord]:
        return self.store.query(FOLDERS, owner_id=owner_id)

    def links_in_folder(self, folder_id: str, owner_id: str | None = None) -> list[schemas.ShortLinkRecord]:
        self.get_folder(folder_id, owner_id)
        return self.store.query(LINKS, folder_id=folder_id)

    def unassigned_links(self, owner_id: str) -> list[schemas.ShortLinkRecord]:
        return self.store.query(LINKS, owner_id=owner_id, folder_id=None)

    def folder_size(self, folder_id: str) -> int:
        return self.store.count(LINKS, folder_id=folder_id)

    # ---------- membership ----------

    def _assignable(self, link_ids, owner_id, folder_id=None) -> list[str]:
        """Check links up front; return those that still need moving into ``folder_id``."""
        pending = []
        for link_id in _unique(link_ids):
            link = self._get_link(link_id, owner_id)
            if link.folder_id is None:
                pending.append(link_id)
            elif link.folder_id != folder_id:
                raise ConflictError(f"Short link {link_id!r} already belongs to folder {link.folder_id!r}")
        return pending

    def create_folder(self, name: str, owner_id: str, initial_link_ids: Iterable[str] = ()) -> schemas.FolderRecord:
        name = clean_name(name)
        pending = self._assignable(initial_link_ids, owner_id)

        folder = schemas.FolderRecord(
            id=uuid.uuid4().hex,
            name=name,
            owner_id=owner_id,
            created_at=datetime.now(timezone.utc),
        )
        batch = self.store.batch()
        batch.set(FOLDERS, folder.id, folder.model_dump(exclude={"id"}))
        for link_id in pending:
            batch.update(LINKS, link_id, {"folder_id": folder.id}, expect={"folder_id": None})
        batch.commit()

        logger.info("Created folder %s (%r) for %s with %d links", folder.id, name, owner_id, len(pending))
        return folder

    def add_links(self, folder_id: str, link_ids: Iterable[str], owner_id: str | None = None) -> int:
        """Move unassigned links into the folder; return how many were moved."""
        link_ids = _unique(link_ids)
        if not link_ids:
            raise ValidationError("Select at least one link")
        folder = self.get_folder(folder_id, owner_id)
        pending = self._assignable(link_ids, owner_id or folder.owner_id, folder_id)
        if not pending:
            return 0

        batch = self.store.batch()
        for link_id in pending:
            batch.update(LINKS, link_id, {"folder_id": folder_id}, expect={"folder_id": None})
        batch.commit()
        logger.info("Added %d links to folder %s", len(pending), folder_id)
        return len(pending)

    def remove_link(self, folder_id: str, link_id: str, owner_id: str | None = None) -> None:
        link = self._get_link(link_id, owner_id)
        if link.folder_id != folder_id:
            raise ConflictError(f"Short link {link_id!r} is not in folder {folder_id!r}")
        self.store.update(LINKS, link_id, {"folder_id": None}, expect={"folder_id": folder_id})
        logger.info("Removed link %s from folder %s", link_id, folder_id)

    def delete_folder(self, folder_id: str, owner_id: str | None = None, missing_ok: bool = False) -> None:
        try:
            self.get_folder(folder_id, owner_id)
        except NotFoundError:
            if missing_ok:
                return
            raise

        members = self.store.query(LINKS, folder_id=folder_id)
        batch = self.store.batch()
        # Unassign, never delete; matched by folder at commit time
        batch.update_where(LINKS, {"folder_id": folder_id}, {"folder_id": None})
        batch.delete(FOLDERS, folder_id)
        batch.commit()
        logger.info("Deleted folder %s, unassigned %d links", folder_id, len(members))

    def rename_folder(self, folder_id: str, new_name: str, owner_id: str | None = None) -> schemas.FolderRecord:
        new_name = clean_name(new_name)
        folder = self.get_folder(folder_id, owner_id)
        self.store.update(FOLDERS, folder_id, {"name": new_name})
        return folder.model_copy(update={"name": new_name})
