import logging
import os
from pathlib import Path

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from fastapi.security import OAuth2PasswordRequestForm

from zurl import analytics, auth, crud, database, models, qr_utils, schemas
from zurl.errors import ZurlError
from zurl.folders import FolderCoordinator
from zurl.gate import LinkAccessGate
from zurl.store import DocumentStore

load_dotenv(Path(__file__).parent.parent / ".env")

ENVIRONMENT = os.getenv("ENVIRONMENT", "dev")

# --- Logging ---
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
)
logger = logging.getLogger("zurl")

# --- DB tables ---
models.Base.metadata.create_all(bind=database.engine)

app = FastAPI(
    title="Zurl",
    description="Short links with optional unlock secrets, organised into folders.",
    version="1.0.0",
)

# --- CORS ---
origins = ["*"] if ENVIRONMENT == "dev" else [
    os.getenv("PUBLIC_BASE_URL", "http://localhost:8000"),
]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ZurlError)
def handle_zurl_error(request: Request, exc: ZurlError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.detail)
    else:
        logger.info("%s %s rejected: %s", request.method, request.url.path, exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


def get_store(db=Depends(database.get_db)) -> DocumentStore:
    return DocumentStore(db)

def get_gate(store: DocumentStore = Depends(get_store)) -> LinkAccessGate:
    return LinkAccessGate(store)

def get_folders(store: DocumentStore = Depends(get_store)) -> FolderCoordinator:
    return FolderCoordinator(store)


# Small config for clients to know the public base URL
@app.get("/config", include_in_schema=False)
def get_config(request: Request):
    base = os.getenv("PUBLIC_BASE_URL") or str(request.base_url).rstrip("/")
    return {"public_base_url": base}

# Health check (useful for uptime monitors & load balancers)
@app.get("/health", include_in_schema=False)
def health():
    return {"status": "ok", "env": ENVIRONMENT}

# ---------- Auth ----------
@app.post("/login", response_model=schemas.Token)
def login(response: Response, form_data: OAuth2PasswordRequestForm = Depends()):
    if not auth.authenticate_user(form_data.username, form_data.password):
        raise HTTPException(status_code=400, detail="Invalid credentials")
    token = auth.create_access_token({"sub": form_data.username})
    # Only set secure cookie if HTTPS is configured
    is_https = os.getenv("PUBLIC_BASE_URL", "").startswith("https://")
    response.set_cookie(
        key="access_token", value=token,
        httponly=True, samesite="lax", secure=is_https, path="/", max_age=3600
    )
    return {"access_token": token, "token_type": "bearer"}

@app.post("/logout", include_in_schema=False)
def logout(response: Response):
    response.delete_cookie("access_token", path="/")
    return {"ok": True}

# ---------- Links ----------
@app.post("/links", response_model=schemas.LinkOut, status_code=201)
def create_link(link_in: schemas.LinkCreate, db=Depends(database.get_db), user=Depends(auth.get_current_user)):
    link = crud.create_link(db, link_in, owner_id=user)
    logger.info("Created link %s -> %s by=%s protected=%s", link.id, link.original_url, user, link.is_protected)
    return link

@app.get("/links", response_model=schemas.PaginatedLinks)
def list_links(
    protected: bool | None = None,
    active: bool | None = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    db=Depends(database.get_db),
    user=Depends(auth.get_current_user),
):
    items = crud.get_links(db, user, is_protected=protected, is_active=active, skip=skip, limit=limit)
    total = crud.count_links(db, user, is_protected=protected, is_active=active)
    return {"items": items, "total": total, "skip": skip, "limit": limit}

@app.get("/links/{link_id}", response_model=schemas.LinkOut)
def get_link(link_id: str, db=Depends(database.get_db), user=Depends(auth.get_current_user)):
    return crud.get_link(db, link_id, user)

@app.patch("/links/{link_id}", response_model=schemas.LinkOut)
def update_link(link_id: str, link_in: schemas.LinkUpdate, db=Depends(database.get_db), user=Depends(auth.get_current_user)):
    link = crud.update_link(db, link_id, link_in, user)
    logger.info("Updated link %s by=%s", link_id, user)
    return link

@app.patch("/links/{link_id}/active", response_model=schemas.LinkOut)
def toggle_active(link_id: str, body: schemas.ToggleIn, db=Depends(database.get_db), user=Depends(auth.get_current_user)):
    link = crud.set_active(db, link_id, user, body.value)
    logger.info("Link %s %s by=%s", link_id, "activated" if body.value else "deactivated", user)
    return link

@app.patch("/links/{link_id}/protected", response_model=schemas.LinkOut)
def toggle_protected(link_id: str, body: schemas.ToggleIn, db=Depends(database.get_db), user=Depends(auth.get_current_user)):
    link = crud.set_protected(db, link_id, user, body.value)
    logger.info("Link %s protection %s by=%s", link_id, "on" if body.value else "off", user)
    return link

@app.post("/links/{link_id}/secret", response_model=schemas.LinkOut)
def regenerate_secret(link_id: str, db=Depends(database.get_db), user=Depends(auth.get_current_user)):
    link = crud.regenerate_secret(db, link_id, user)
    logger.info("Regenerated unlock secret for %s by=%s", link_id, user)
    return link

@app.get("/links/{link_id}/analytics", response_model=schemas.LinkAnalytics)
def link_analytics(link_id: str, db=Depends(database.get_db), user=Depends(auth.get_current_user)):
    crud.get_link(db, link_id, user)
    return analytics.link_analytics(db, link_id)

@app.delete("/links/{link_id}", response_model=schemas.MessageOut)
def delete_link(link_id: str, db=Depends(database.get_db), user=Depends(auth.get_current_user)):
    crud.delete_link(db, link_id, user)
    logger.info("Deleted link %s by=%s", link_id, user)
    return {"ok": True, "detail": f"Link '{link_id}' deleted"}

# ---------- Folders ----------
def _folder_out(folders: FolderCoordinator, folder) -> dict:
    return {**folder.model_dump(), "link_count": folders.folder_size(folder.id)}

@app.post("/folders", response_model=schemas.FolderOut, status_code=201)
def create_folder(body: schemas.FolderCreate, folders=Depends(get_folders), user=Depends(auth.get_current_user)):
    folder = folders.create_folder(body.name, user, body.link_ids)
    return _folder_out(folders, folder)

@app.get("/folders", response_model=list[schemas.FolderOut])
def list_folders(folders=Depends(get_folders), user=Depends(auth.get_current_user)):
    return [_folder_out(folders, f) for f in folders.list_folders(user)]

@app.get("/folders/unassigned", response_model=list[schemas.LinkOut])
def unassigned_links(folders=Depends(get_folders), user=Depends(auth.get_current_user)):
    return folders.unassigned_links(user)

@app.patch("/folders/{folder_id}", response_model=schemas.FolderOut)
def rename_folder(folder_id: str, body: schemas.FolderRename, folders=Depends(get_folders), user=Depends(auth.get_current_user)):
    folder = folders.rename_folder(folder_id, body.name, owner_id=user)
    logger.info("Renamed folder %s to %r by=%s", folder_id, folder.name, user)
    return _folder_out(folders, folder)

@app.delete("/folders/{folder_id}", response_model=schemas.MessageOut)
def delete_folder(folder_id: str, folders=Depends(get_folders), user=Depends(auth.get_current_user)):
    folders.delete_folder(folder_id, owner_id=user)
    return {"ok": True, "detail": f"Folder '{folder_id}' deleted"}

@app.get("/folders/{folder_id}/links", response_model=list[schemas.LinkOut])
def folder_links(folder_id: str, folders=Depends(get_folders), user=Depends(auth.get_current_user)):
    return folders.links_in_folder(folder_id, owner_id=user)

@app.post("/folders/{folder_id}/links", response_model=schemas.MessageOut)
def add_folder_links(folder_id: str, body: schemas.FolderLinksIn, folders=Depends(get_folders), user=Depends(auth.get_current_user)):
    moved = folders.add_links(folder_id, body.link_ids, owner_id=user)
    return {"ok": True, "detail": f"{moved} link(s) added to folder"}

@app.delete("/folders/{folder_id}/links/{link_id}", response_model=schemas.MessageOut)
def remove_folder_link(folder_id: str, link_id: str, folders=Depends(get_folders), user=Depends(auth.get_current_user)):
    folders.remove_link(folder_id, link_id, owner_id=user)
    return {"ok": True, "detail": f"Link '{link_id}' removed from folder"}

# ---------- Public ----------
def _resolve_active(gate: LinkAccessGate, link_id: str) -> schemas.ShortLinkRecord:
    record = gate.resolve(link_id)
    if not record.is_active:
        raise HTTPException(status_code=404, detail="Not found")
    return record

def _record_click(db, link_id: str, request: Request) -> None:
    try:
        click = analytics.describe_request(request.headers, request.client.host if request.client else None)
        crud.record_click(db, link_id, click)
    except Exception:
        logger.exception("Failed to record click for %s", link_id)

@app.get("/qr/{link_id}")
def qr_code(
    link_id: str,
    request: Request,
    fill: str = Query("black", max_length=32),
    background: str = Query("white", max_length=32),
    gate: LinkAccessGate = Depends(get_gate),
):
    record = gate.resolve(link_id)
    base = os.getenv("PUBLIC_BASE_URL") or str(request.base_url).rstrip("/")
    try:
        qr_b64 = qr_utils.generate_qr_base64(f"{base}/{record.id}", fill_color=fill, back_color=background)
    except ValueError:
        raise HTTPException(status_code=422, detail="Invalid colour")
    return {"qr_base64": qr_b64}

@app.post("/unlock/{link_id}", response_model=schemas.RevealResult)
def unlock(link_id: str, body: schemas.UnlockIn, request: Request, db=Depends(database.get_db), gate: LinkAccessGate = Depends(get_gate)):
    result = gate.reveal(_resolve_active(gate, link_id), body.secret)
    if result.status == "redirect":
        _record_click(db, link_id, request)
        return result
    return JSONResponse(status_code=401 if result.status == "locked" else 403, content=result.model_dump())

# Pretty redirect /{link_id}; registered last so it never shadows the routes above
@app.get("/{link_id}", include_in_schema=False)
def redirect_pretty(link_id: str, request: Request, db=Depends(database.get_db), gate: LinkAccessGate = Depends(get_gate)):
    if link_id in crud.RESERVED or not crud.SLUG_RE.fullmatch(link_id):
        raise HTTPException(status_code=404, detail="Not found")
    result = gate.reveal(_resolve_active(gate, link_id))
    if result.status != "redirect":
        return JSONResponse(status_code=401, content={**result.model_dump(), "unlock": f"/unlock/{link_id}"})
    _record_click(db, link_id, request)
    return RedirectResponse(url=result.target, status_code=307)
