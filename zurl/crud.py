import logging
import re
import secrets
import string
import uuid

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from zurl import models, schemas
from zurl.errors import ConflictError, NotFoundError, StoreError, ValidationError

logger = logging.getLogger("zurl.crud")

ALPHABET = string.ascii_letters + string.digits
SLUG_RE = re.compile(r"[A-Za-z0-9_-]{2,32}")

# Paths the app serves itself; a slug may not shadow them
RESERVED = {"docs", "openapi.json", "redoc", "config", "login", "logout",
            "links", "folders", "unlock", "qr", "favicon.ico", "health"}

_UNSET = object()

def _commit(db: Session, what: str) -> None:
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError(f"Could not {what}: conflicting write") from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Failed to %s", what)
        raise StoreError(f"Could not {what}") from exc

def generate_code(length: int = 7) -> str:
    return "".join(secrets.choice(ALPHABET) for _ in range(length))

def generate_secret() -> str:
    return str(uuid.uuid4())

def _owned_link(db: Session, link_id: str, owner_id: str) -> models.ShortLink:
    link = db.get(models.ShortLink, link_id)
    if not link or link.owner_id != owner_id:
        raise NotFoundError(f"Short link {link_id!r} not found")
    return link

def create_link(db: Session, link_in: schemas.LinkCreate, owner_id: str) -> models.ShortLink:
    if link_in.custom_id:
        code = link_in.custom_id.strip()
        if code in RESERVED or not SLUG_RE.fullmatch(code):
            raise ValidationError("Custom id must be 2-32 chars (A-Z, a-z, 0-9, _, -)")
        if db.get(models.ShortLink, code):
            raise ConflictError(f"Short link {code!r} is already taken")
    else:
        code = generate_code()
        while db.get(models.ShortLink, code):
            code = generate_code()

    if link_in.folder_id is not None:
        folder = db.get(models.Folder, link_in.folder_id)
        if not folder or folder.owner_id != owner_id:
            raise NotFoundError(f"Folder {link_in.folder_id!r} not found")

    secret = link_in.unlock_secret
    if link_in.is_protected and secret is None:
        secret = generate_secret()

    link = models.ShortLink(
        id=code,
        original_url=link_in.original_url,
        name=link_in.name,
        owner_id=owner_id,
        is_active=True,
        is_protected=link_in.is_protected,
        unlock_secret=secret,
        folder_id=link_in.folder_id,
        click_count=0,
    )
    db.add(link)
    _commit(db, f"create short link {code!r}")
    db.refresh(link)
    return link

def update_link(db: Session, link_id: str, link_in: schemas.LinkUpdate, owner_id: str) -> models.ShortLink:
    link = _owned_link(db, link_id, owner_id)
    changes = link_in.model_dump(exclude_unset=True)
    if changes.get("original_url", _UNSET) is None:
        raise ValidationError("original_url cannot be cleared")
    if link.is_protected and "unlock_secret" in changes and changes["unlock_secret"] is None:
        raise ValidationError("A protected link needs an unlock secret")
    for field, value in changes.items():
        setattr(link, field, value)
    _commit(db, f"update short link {link_id!r}")
    db.refresh(link)
    return link

def set_active(db: Session, link_id: str, owner_id: str, value: bool) -> models.ShortLink:
    link = _owned_link(db, link_id, owner_id)
    link.is_active = value
    _commit(db, f"update short link {link_id!r}")
    db.refresh(link)
    return link

def set_protected(db: Session, link_id: str, owner_id: str, value: bool) -> models.ShortLink:
    link = _owned_link(db, link_id, owner_id)
    link.is_protected = value
    if value and link.unlock_secret is None:
        link.unlock_secret = generate_secret()
    _commit(db, f"update short link {link_id!r}")
    db.refresh(link)
    return link

def regenerate_secret(db: Session, link_id: str, owner_id: str) -> models.ShortLink:
    link = _owned_link(db, link_id, owner_id)
    link.unlock_secret = generate_secret()
    _commit(db, f"update short link {link_id!r}")
    db.refresh(link)
    return link

def delete_link(db: Session, link_id: str, owner_id: str) -> None:
    link = _owned_link(db, link_id, owner_id)
    db.delete(link)
    _commit(db, f"delete short link {link_id!r}")

def get_link(db: Session, link_id: str, owner_id: str) -> models.ShortLink:
    return _owned_link(db, link_id, owner_id)

def _link_filters(owner_id, is_protected, is_active, folder_id):
    conditions = [models.ShortLink.owner_id == owner_id]
    if is_protected is not None:
        conditions.append(models.ShortLink.is_protected == is_protected)
    if is_active is not None:
        conditions.append(models.ShortLink.is_active == is_active)
    if folder_id is not _UNSET:
        conditions.append(models.ShortLink.folder_id.is_(None) if folder_id is None
                          else models.ShortLink.folder_id == folder_id)
    return conditions

def get_links(
    db: Session,
    owner_id: str,
    is_protected: bool | None = None,
    is_active: bool | None = None,
    folder_id=_UNSET,
    skip: int = 0,
    limit: int = 100,
) -> list[models.ShortLink]:
    return (
        db.execute(
            select(models.ShortLink)
            .where(*_link_filters(owner_id, is_protected, is_active, folder_id))
            .order_by(models.ShortLink.created_at.desc(), models.ShortLink.id)
            .offset(skip)
            .limit(limit)
        )
        .scalars()
        .all()
    )

def count_links(
    db: Session,
    owner_id: str,
    is_protected: bool | None = None,
    is_active: bool | None = None,
    folder_id=_UNSET,
) -> int:
    return db.execute(
        select(func.count(models.ShortLink.id))
        .where(*_link_filters(owner_id, is_protected, is_active, folder_id))
    ).scalar_one()

def record_click(db: Session, link_id: str, click: dict | None = None) -> None:
    """Bump the counter and store one click event in the same commit.

    ``modified_at`` is left alone; a visit is not an edit.
    """
    db.execute(
        update(models.ShortLink)
        .where(models.ShortLink.id == link_id)
        .values(click_count=models.ShortLink.click_count + 1, modified_at=models.ShortLink.modified_at)
        .execution_options(synchronize_session=False)
    )
    db.add(models.Click(link_id=link_id, **(click or {})))
    _commit(db, f"record click for {link_id!r}")
