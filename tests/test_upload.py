import pytest
from conftest import make_instance, reservation_payload
from fastapi import HTTPException

from n2wash.models import Instance
from n2wash.services.storage import LOGO_IMAGE_TYPES, MAX_FILE_SIZE, validate_image_upload

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


@pytest.fixture
def storage(monkeypatch):
    """Records object-store calls instead of talking to R2"""
    calls = {"uploaded": [], "deleted": []}

    def upload_bytes(key, contents, content_type, client=None):
        calls["uploaded"].append((key, content_type))
        return key

    monkeypatch.setattr("n2wash.services.storage.upload_bytes", upload_bytes)
    monkeypatch.setattr("n2wash.routes.upload.delete_object", lambda key: calls["deleted"].append(key))
    monkeypatch.setattr("n2wash.routes.upload.generate_presigned_url", lambda key: f"https://r2.example/{key}?sig=1")
    return calls


class TestValidateImage:
    def test_accepts_known_type(self):
        assert validate_image_upload("image/jpeg", "car.jpg", 1024) == "jpg"

    @pytest.mark.parametrize(
        "content_type, filename, size",
        [
            ("application/pdf", "doc.pdf", 10),
            ("image/png", "../etc/passwd", 10),
            ("image/png", "a" * 256, 10),
            ("image/png", "empty.png", 0),
            ("image/png", "huge.png", MAX_FILE_SIZE + 1),
        ],
    )
    def test_rejects(self, content_type, filename, size):
        with pytest.raises(HTTPException) as exc_info:
            validate_image_upload(content_type, filename, size)
        assert exc_info.value.status_code == 400

    def test_logo_types_exclude_heic(self):
        with pytest.raises(HTTPException):
            validate_image_upload("image/heic", "logo.heic", 10, LOGO_IMAGE_TYPES)


class TestLogo:
    def test_upload_replaces_previous(self, client, db, instance, admin_headers, storage):
        url = f"/instances/{instance.id}/uploads/logo"
        first = client.post(url, files={"file": ("logo.png", PNG, "image/png")}, headers=admin_headers).json()
        assert first["key"].startswith(f"instances/{instance.id}/logo/")
        assert first["key"].endswith(".png")
        assert first["url"].startswith("https://r2.example/")

        second = client.post(url, files={"file": ("logo2.png", PNG, "image/png")}, headers=admin_headers).json()
        assert storage["deleted"] == [first["key"]]

        db.expire_all()
        assert db.get(Instance, instance.id).logo_url == second["key"]

    def test_delete_logo(self, client, instance, admin_headers, storage):
        url = f"/instances/{instance.id}/uploads/logo"
        assert client.delete(url, headers=admin_headers).status_code == 404
        client.post(url, files={"file": ("logo.png", PNG, "image/png")}, headers=admin_headers)
        assert client.delete(url, headers=admin_headers).json() == {"success": True}
        assert len(storage["deleted"]) == 1

    def test_rejects_non_image(self, client, instance, admin_headers, storage):
        response = client.post(
            f"/instances/{instance.id}/uploads/logo",
            files={"file": ("notes.txt", b"hello", "text/plain")},
            headers=admin_headers,
        )
        assert response.status_code == 400
        assert storage["uploaded"] == []


def test_reservation_photo(client, instance, station, booking_day, admin_headers, storage):
    reservation = client.post(
        f"/instances/{instance.id}/reservations",
        json=reservation_payload(station.id, booking_day),
        headers=admin_headers,
    ).json()
    response = client.post(
        f"/instances/{instance.id}/uploads/reservations/{reservation['id']}/photos",
        files={"file": ("front.jpg", b"\xff\xd8\xff" + b"\x00" * 16, "image/jpeg")},
        headers=admin_headers,
    )
    assert response.status_code == 200
    body = response.json()
    assert body["key"].startswith(f"instances/{instance.id}/reservations/{reservation['id']}/")
    assert body["photoUrls"] == [body["key"]]

    missing = client.post(
        f"/instances/{instance.id}/uploads/reservations/999/photos",
        files={"file": ("front.jpg", b"\xff\xd8\xff", "image/jpeg")},
        headers=admin_headers,
    )
    assert missing.status_code == 404


class TestPresigned:
    def test_own_key(self, client, instance, admin_headers, storage):
        key = f"instances/{instance.id}/logo/abc.png"
        response = client.get(f"/instances/{instance.id}/uploads/presigned", params={"key": key}, headers=admin_headers)
        assert response.json() == {"url": f"https://r2.example/{key}?sig=1"}

    def test_foreign_or_traversing_keys(self, client, db, instance, admin_headers, storage):
        other = make_instance(db, slug="other")
        url = f"/instances/{instance.id}/uploads/presigned"
        for key in (f"instances/{other.id}/logo/abc.png", f"instances/{instance.id}/../{other.id}/x.png", "abc.png"):
            assert client.get(url, params={"key": key}, headers=admin_headers).status_code == 403
