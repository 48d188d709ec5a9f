from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from lens_manager.auth import get_current_user
from lens_manager.config import Config
from lens_manager.db import connect
from lens_manager.errors import api_error
from lens_manager.studio import galleries

from .common import get_config, http_from_value_error, not_found, ok


router = APIRouter()


class GalleryRequest(BaseModel):
    gallery_name: str
    booking_id: Optional[int] = None
    description: Optional[str] = None
    gallery_date: Optional[str] = None
    cover_image: Optional[str] = None
    is_public: Optional[bool] = None
    password_protected: Optional[bool] = None
    gallery_password: Optional[str] = None
    download_enabled: Optional[bool] = None
    expiry_date: Optional[str] = None


class GalleryUpdateRequest(BaseModel):
    gallery_name: Optional[str] = None
    booking_id: Optional[int] = None
    description: Optional[str] = None
    gallery_date: Optional[str] = None
    cover_image: Optional[str] = None
    is_public: Optional[bool] = None
    password_protected: Optional[bool] = None
    gallery_password: Optional[str] = None
    download_enabled: Optional[bool] = None
    expiry_date: Optional[str] = None


class ImageRequest(BaseModel):
    image_url: str
    image_name: Optional[str] = None
    file_size: int = 0
    image_order: Optional[int] = None


@router.get("/galleries")
def list_galleries(
    user: Dict[str, Any] = Depends(get_current_user),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        return {"galleries": galleries.list_galleries(conn, int(user["user_id"]))}


@router.get("/galleries/{gallery_id}")
def get_gallery(
    gallery_id: int,
    user: Dict[str, Any] = Depends(get_current_user),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        g = galleries.get_gallery(conn, int(user["user_id"]), gallery_id)
        if g is None:
            raise not_found("gallery")
        g["images"] = galleries.list_images(conn, int(user["user_id"]), gallery_id)
    return {"gallery": g}


@router.post("/galleries", status_code=201)
def create_gallery(
    payload: GalleryRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        try:
            g = galleries.create_gallery(conn, int(user["user_id"]), payload.model_dump())
        except ValueError as e:
            raise http_from_value_error(e)
    return ok("Gallery created successfully", id=g["gallery_id"], gallery=g)


@router.put("/galleries/{gallery_id}")
def update_gallery(
    gallery_id: int,
    payload: GalleryUpdateRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        try:
            g = galleries.update_gallery(conn, int(user["user_id"]), gallery_id, payload.model_dump(exclude_unset=True))
        except ValueError as e:
            raise http_from_value_error(e)
    if g is None:
        raise not_found("gallery")
    return ok("Gallery updated successfully", gallery=g)


@router.delete("/galleries/{gallery_id}")
def delete_gallery(
    gallery_id: int,
    user: Dict[str, Any] = Depends(get_current_user),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        deleted = galleries.delete_gallery(conn, int(user["user_id"]), gallery_id)
    if not deleted:
        raise not_found("gallery")
    return ok("Gallery deleted successfully")


# -----------------------------
# Images
# -----------------------------


@router.get("/galleries/{gallery_id}/images")
def list_images(
    gallery_id: int,
    user: Dict[str, Any] = Depends(get_current_user),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        images = galleries.list_images(conn, int(user["user_id"]), gallery_id)
    if images is None:
        raise not_found("gallery")
    return {"images": images}


@router.post("/galleries/{gallery_id}/images", status_code=201)
def add_image(
    gallery_id: int,
    payload: ImageRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        try:
            img = galleries.add_image(conn, int(user["user_id"]), gallery_id, payload.model_dump())
        except ValueError as e:
            raise http_from_value_error(e)
    if img is None:
        raise not_found("gallery")
    return ok("Image added successfully", id=img["image_id"], image=img)


@router.delete("/galleries/{gallery_id}/images/{image_id}")
def delete_image(
    gallery_id: int,
    image_id: int,
    user: Dict[str, Any] = Depends(get_current_user),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        deleted = galleries.delete_image(conn, int(user["user_id"]), gallery_id, image_id)
    if not deleted:
        raise not_found("image")
    return ok("Image deleted successfully")


# -----------------------------
# Public (no auth)
# -----------------------------


@router.get("/public/galleries/{gallery_id}")
def public_gallery(
    gallery_id: int,
    password: Optional[str] = Query(None),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        try:
            g = galleries.get_public_gallery(conn, gallery_id, password=password)
        except ValueError as e:
            raise api_error(401, "This gallery is password protected", str(e))
    if g is None:
        raise not_found("gallery")
    return {"gallery": g}
