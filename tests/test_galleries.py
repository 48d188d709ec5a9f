"""
Galleries, image metadata and the public client view.
"""
import pytest

from lens_manager.util.time import add_days, today_iso


@pytest.fixture
def photographer(register):
    return register("gallery@example.com")


def _gallery(client, headers, **data):
    r = client.post("/galleries", headers=headers, json={"gallery_name": "Perera Wedding", **data})
    assert r.status_code == 201, r.text
    return r.json()["gallery"]


def _image(client, headers, gallery_id, name, size=1024, **extra):
    r = client.post(
        f"/galleries/{gallery_id}/images",
        headers=headers,
        json={"image_url": f"https://cdn.example.com/{name}", "image_name": name, "file_size": size, **extra},
    )
    assert r.status_code == 201, r.text
    return r.json()["image"]


def test_gallery_crud_and_images(client, photographer):
    _user, h = photographer
    g = _gallery(client, h, description="<i>First</i> look")
    assert g["description"] == "First look"
    assert g["is_public"] == 0
    assert g["download_enabled"] == 1
    assert "gallery_password_hash" not in g

    a = _image(client, h, g["gallery_id"], "a.jpg")
    b = _image(client, h, g["gallery_id"], "b.jpg")
    assert (a["image_order"], b["image_order"]) == (0, 1)

    detail = client.get(f"/galleries/{g['gallery_id']}", headers=h).json()["gallery"]
    assert detail["image_count"] == 2
    assert detail["first_image"] == "https://cdn.example.com/a.jpg"
    assert [i["image_name"] for i in detail["images"]] == ["a.jpg", "b.jpg"]

    r = client.put(f"/galleries/{g['gallery_id']}", headers=h, json={"gallery_name": "Renamed"})
    assert r.json()["gallery"]["gallery_name"] == "Renamed"

    assert client.delete(f"/galleries/{g['gallery_id']}/images/{a['image_id']}", headers=h).status_code == 200
    images = client.get(f"/galleries/{g['gallery_id']}/images", headers=h).json()["images"]
    assert [i["image_id"] for i in images] == [b["image_id"]]

    assert client.delete(f"/galleries/{g['gallery_id']}", headers=h).status_code == 200
    assert client.get(f"/galleries/{g['gallery_id']}", headers=h).status_code == 404


def test_gallery_requires_password_when_protected(client, photographer):
    _user, h = photographer
    r = client.post("/galleries", headers=h, json={"gallery_name": "Secret", "password_protected": True})
    assert r.status_code == 400
    assert r.json()["details"] == "gallery_password_required"


def test_galleries_are_owner_scoped(client, photographer, register):
    _user, h = photographer
    _other, ho = register("nosy@example.com")
    g = _gallery(client, h)
    img = _image(client, h, g["gallery_id"], "a.jpg")

    assert client.get("/galleries", headers=ho).json()["galleries"] == []
    assert client.get(f"/galleries/{g['gallery_id']}", headers=ho).status_code == 404
    assert client.get(f"/galleries/{g['gallery_id']}/images", headers=ho).status_code == 404
    r = client.post(
        f"/galleries/{g['gallery_id']}/images",
        headers=ho,
        json={"image_url": "https://cdn.example.com/x.jpg"},
    )
    assert r.status_code == 404
    assert client.delete(f"/galleries/{g['gallery_id']}/images/{img['image_id']}", headers=ho).status_code == 404


def test_storage_usage_is_reported(client, photographer):
    _user, h = photographer
    g = _gallery(client, h)
    _image(client, h, g["gallery_id"], "a.jpg", size=3000)
    _image(client, h, g["gallery_id"], "b.jpg", size=2000)

    check = client.get("/access-levels/check-storage", headers=h).json()
    assert check["current"] == 5000
    assert check["can_create"] is True

    info = client.get("/access-levels/user-info", headers=h).json()
    assert info["current_usage"]["storage_bytes"] == 5000


def test_public_gallery_with_password(client, photographer):
    _user, h = photographer
    g = _gallery(client, h, is_public=True, password_protected=True, gallery_password="s3cret-pass")
    _image(client, h, g["gallery_id"], "a.jpg")
    url = f"/public/galleries/{g['gallery_id']}"

    no_pw = client.get(url)
    assert no_pw.status_code == 401
    assert no_pw.json() == {"message": "This gallery is password protected", "details": "gallery_password_required"}
    assert client.get(url, params={"password": "wrong"}).status_code == 401

    r = client.get(url, params={"password": "s3cret-pass"})
    assert r.status_code == 200
    gallery = r.json()["gallery"]
    assert gallery["gallery_name"] == "Perera Wedding"
    assert len(gallery["images"]) == 1
    assert "gallery_password_hash" not in gallery
    assert "user_id" not in gallery


def test_public_gallery_visibility(client, photographer):
    _user, h = photographer
    private = _gallery(client, h)
    open_gallery = _gallery(client, h, is_public=True)
    expired = _gallery(client, h, is_public=True, expiry_date=add_days(today_iso(), -1))
    last_day = _gallery(client, h, is_public=True, expiry_date=today_iso())

    assert client.get(f"/public/galleries/{private['gallery_id']}").status_code == 404
    assert client.get(f"/public/galleries/{open_gallery['gallery_id']}").status_code == 200
    assert client.get(f"/public/galleries/{expired['gallery_id']}").status_code == 404
    assert client.get(f"/public/galleries/{last_day['gallery_id']}").status_code == 200


def test_removing_protection_clears_password(client, photographer):
    _user, h = photographer
    g = _gallery(client, h, is_public=True, password_protected=True, gallery_password="s3cret-pass")
    r = client.put(f"/galleries/{g['gallery_id']}", headers=h, json={"password_protected": False})
    assert r.status_code == 200
    assert client.get(f"/public/galleries/{g['gallery_id']}").status_code == 200


def test_oversized_image_is_rejected(client, photographer):
    _user, h = photographer
    g = _gallery(client, h)
    r = client.post(
        f"/galleries/{g['gallery_id']}/images",
        headers=h,
        json={"image_url": "https://cdn.example.com/raw.jpg", "file_size": 2 * 1024 * 1024},
    )
    assert r.status_code == 400
    assert r.json()["details"] == "image_too_large"
    assert client.get(f"/galleries/{g['gallery_id']}/images", headers=h).json()["images"] == []


def test_gallery_flags_cannot_be_nulled(client, photographer):
    _user, h = photographer
    g = _gallery(client, h, is_public=True)
    r = client.put(f"/galleries/{g['gallery_id']}", headers=h, json={"is_public": None})
    assert r.status_code == 400
    assert r.json()["details"] == "is_public_required"
    assert client.get(f"/galleries/{g['gallery_id']}", headers=h).json()["gallery"]["is_public"] == 1
