"""Admin PDF uploads and signed URL re-issue."""

from tests.conftest import PDF_BYTES


def test_upload_pdf(api, admin, storage):
    api.act_as(admin)
    response = api.client.post(
        "/api/upload/pdf",
        files={"file": ("Quarterly Review.pdf", PDF_BYTES, "application/pdf")},
        data={"materialName": "Quarterly review"},
    )
    assert response.status_code == 201
    data = response.json()["data"]
    assert data["storageRef"].startswith("lesson_materials/")
    assert data["storageRef"].endswith("_quarterly_review.pdf")
    assert data["materialName"] == "Quarterly review"
    assert data["fileSize"] == len(PDF_BYTES)
    assert storage.objects[data["storageRef"]] == PDF_BYTES


def test_upload_rejects_non_pdf(api, admin):
    api.act_as(admin)
    response = api.client.post("/api/upload/pdf", files={"file": ("photo.png", b"\x89PNG", "image/png")})
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "validation_error"


def test_upload_requires_admin(api):
    response = api.client.post("/api/upload/pdf", files={"file": ("a.pdf", PDF_BYTES, "application/pdf")})
    assert response.status_code == 403


def test_signed_url(api, admin):
    api.act_as(admin)
    response = api.client.post(
        "/api/upload/signed-url",
        json={"storageRef": "lesson_materials/1760000000000_ab12cd34_hvbrt_abvdh.pdf", "expiresInHours": 1},
    )
    assert response.status_code == 200
    assert "X-Amz-Expires=3600" in response.json()["data"]["signedUrl"]

    bad = api.client.post("/api/upload/signed-url", json={"storageRef": "../etc/passwd"})
    assert bad.status_code == 400
