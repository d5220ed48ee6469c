"""Protected material routes."""

from tests.conftest import PDF_BYTES


def test_list_materials(api, published_lesson):
    response = api.client.get(f"/api/lessons/{published_lesson.id}/materials")
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["totalCount"] == 2
    assert [m["accessType"] for m in data["materials"]] == ["protected", "direct"]
    assert "storageRef" not in response.text


def test_view_returns_signed_url(api, published_lesson):
    response = api.client.get(f"/api/lessons/{published_lesson.id}/materials/m-file/view")
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["expiresInMinutes"] == 120
    assert "X-Amz-Expires=7200" in data["signedUrl"]


def test_view_of_link_is_rejected(api, published_lesson):
    response = api.client.get(f"/api/lessons/{published_lesson.id}/materials/m-link/view")
    assert response.status_code == 400


def test_stream_proxies_pdf(api, published_lesson):
    response = api.client.get(f"/api/lessons/{published_lesson.id}/materials/m-file/stream")
    assert response.status_code == 200
    assert response.content == PDF_BYTES
    assert response.headers["content-type"] == "application/pdf"
    assert response.headers["content-disposition"].startswith("inline; filename*=UTF-8''")
    assert "no-store" in response.headers["cache-control"]
    assert response.headers["x-frame-options"] == "SAMEORIGIN"


def test_stream_missing_object_is_bad_gateway(api, published_lesson, storage):
    storage.objects.clear()
    response = api.client.get(f"/api/lessons/{published_lesson.id}/materials/m-file/stream")
    assert response.status_code == 502
    assert response.json()["message"] == "Unable to load the PDF file"


def test_unknown_material(api, published_lesson):
    response = api.client.get(f"/api/lessons/{published_lesson.id}/materials/nope/view")
    assert response.status_code == 404


def test_draft_materials_gated(api, draft_lesson, admin, storage):
    base = f"/api/lessons/{draft_lesson.id}/materials"
    for path in (base, f"{base}/m-file/view", f"{base}/m-file/stream"):
        response = api.client.get(path)
        assert response.status_code == 403, path
        assert response.json()["error"]["code"] == "authorization_error"
    assert storage.presigned == []

    api.act_as(admin)
    assert api.client.get(f"{base}/m-file/view").status_code == 200
    assert api.client.get(f"{base}/m-file/stream").content == PDF_BYTES
