# tests/v1/test_attachments.py
"""Tests for attachment endpoints."""

from fastapi import status

from tests.conftest import PNG_BYTES


def test_upload_and_download_image(client, alice_headers, attachments_root) -> None:
    response = client.post(
        "/api/v1/attachments",
        files={"file": ("cat.png", PNG_BYTES, "image/png")},
        headers=alice_headers,
    )

    assert response.status_code == status.HTTP_201_CREATED
    record = response.json()
    assert record["content_type"] == "image/png"
    assert record["size_bytes"] == len(PNG_BYTES)
    assert (attachments_root / record["id"]).exists()

    download = client.get(f"/api/v1/attachments/{record['id']}", headers=alice_headers)
    assert download.status_code == status.HTTP_200_OK
    assert download.headers["content-type"] == "image/png"
    assert download.content == PNG_BYTES


def test_upload_rejects_non_image(client, alice_headers) -> None:
    response = client.post(
        "/api/v1/attachments",
        files={"file": ("report.pdf", b"%PDF-1.7", "application/pdf")},
        headers=alice_headers,
    )

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["detail"] == "Please select an image file"


def test_download_missing_attachment(client, alice_headers) -> None:
    response = client.get("/api/v1/attachments/0123abcd", headers=alice_headers)

    assert response.status_code == status.HTTP_404_NOT_FOUND
