"""HTTP tests for the /tickets endpoints."""

import io
import json
import os
import uuid

import pytest
from fastapi import UploadFile
from sqlalchemy.exc import SQLAlchemyError

from conftest import auth_headers
from hostelpal.core.config import settings
from hostelpal.db.enums import TicketCategory, TicketPriority
from hostelpal.db.models import Ticket
from hostelpal.routers import tickets as tickets_router
from hostelpal.services import notification_service, storage_service
from hostelpal.utils.file_upload import content_length_exceeds_limit, get_upload_file_size

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


def _form(**overrides) -> dict:
    data = {
        "title": "Broken ceiling fan",
        "description": "The ceiling fan in my room stopped working last night",
    }
    data.update(overrides)
    return data


async def _file_ticket(client, user, **overrides) -> dict:
    response = await client.post("/tickets", data=_form(**overrides), headers=auth_headers(user))
    assert response.status_code == 201, response.text
    return response.json()["ticket"]


# =============================================================================
# Creation
# =============================================================================

@pytest.mark.asyncio
async def test_student_files_ticket(client, student, classifier, fake_channels):
    classifier.category = TicketCategory.ELECTRICITY
    classifier.priority = TicketPriority.MEDIUM

    response = await client.post(
        "/tickets",
        data=_form(location=json.dumps({"roomNumber": "A-102", "specificLocation": "Bathroom"})),
        headers=auth_headers(student),
    )

    assert response.status_code == 201
    body = response.json()
    assert body["message"] == "Ticket created successfully"
    ticket = body["ticket"]
    assert ticket["status"] == "open"
    assert ticket["category"] == "electricity"
    assert ticket["priority"] == "medium"
    assert ticket["location"] == {
        "room_number": "A-102",
        "block": "A",
        "specific_location": "Bathroom",
    }
    assert ticket["student"]["id"] == str(student.id)
    assert ticket["ai_analysis"]["category_source"] == "ai"
    assert ticket["is_overdue"] is False
    assert ticket["version"] == 1


@pytest.mark.asyncio
async def test_staff_cannot_file_ticket(client, staff, classifier):
    response = await client.post("/tickets", data=_form(), headers=auth_headers(staff))

    assert response.status_code == 403
    assert response.json()["detail"] == "Access denied"


@pytest.mark.asyncio
async def test_create_requires_authentication(client, classifier):
    response = await client.post("/tickets", data=_form())

    assert response.status_code == 401
    assert response.json()["detail"] == "Not authenticated"


@pytest.mark.asyncio
async def test_create_reports_field_errors(client, db, student, classifier):
    response = await client.post(
        "/tickets",
        data=_form(title="Fan", description="too short"),
        headers=auth_headers(student),
    )

    assert response.status_code == 400
    fields = {e["field"] for e in response.json()["detail"]}
    assert fields == {"title", "description"}
    assert db.query(Ticket).count() == 0


@pytest.mark.asyncio
async def test_malformed_location_is_rejected(client, student, classifier):
    response = await client.post(
        "/tickets", data=_form(location="room A"), headers=auth_headers(student)
    )

    assert response.status_code == 400
    assert response.json()["detail"][0]["field"] == "location"


@pytest.mark.asyncio
async def test_unknown_category_is_a_validation_error(client, student, classifier):
    response = await client.post(
        "/tickets", data=_form(category="plumbing"), headers=auth_headers(student)
    )

    assert response.status_code == 400
    assert response.json()["detail"][0]["field"] == "category"


@pytest.mark.asyncio
async def test_images_are_stored_and_referenced(client, student, classifier):
    files = [
        ("images", ("fan.png", PNG_BYTES, "image/png")),
        ("images", ("wire.png", PNG_BYTES, "image/png")),
    ]

    response = await client.post(
        "/tickets", data=_form(), files=files, headers=auth_headers(student)
    )

    assert response.status_code == 201, response.text
    images = response.json()["ticket"]["images"]
    assert len(images) == 2
    for image in images:
        assert image["url"].startswith("/uploads/tickets/")
        assert os.path.exists(os.path.join(settings.LOCAL_STORAGE_PATH, image["storage_id"]))


@pytest.mark.asyncio
async def test_too_many_images_are_rejected(client, student, classifier):
    files = [("images", (f"{i}.png", PNG_BYTES, "image/png")) for i in range(6)]

    response = await client.post(
        "/tickets", data=_form(), files=files, headers=auth_headers(student)
    )

    assert response.status_code == 400
    assert response.json()["detail"][0]["field"] == "images"


@pytest.mark.asyncio
async def test_non_image_upload_is_rejected(client, student, classifier):
    files = [("images", ("notes.txt", b"hello", "text/plain"))]

    response = await client.post(
        "/tickets", data=_form(), files=files, headers=auth_headers(student)
    )

    assert response.status_code == 400
    assert response.json()["detail"][0] == {
        "field": "images",
        "message": "File extension '.txt' not allowed",
    }


# =============================================================================
# Listing and reading
# =============================================================================

@pytest.mark.asyncio
async def test_my_tickets_lists_only_own(client, student, other_student, classifier):
    for i in range(3):
        await _file_ticket(client, student, title=f"Issue number {i}")
    await _file_ticket(client, other_student)

    response = await client.get("/tickets/my-tickets?limit=2", headers=auth_headers(student))

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 3
    assert body["total_pages"] == 2
    assert body["current_page"] == 1
    assert len(body["tickets"]) == 2
    assert {t["student"]["id"] for t in body["tickets"]} == {str(student.id)}


@pytest.mark.asyncio
async def test_all_tickets_is_staff_only(client, student, staff, classifier):
    await _file_ticket(client, student)

    denied = await client.get("/tickets", headers=auth_headers(student))
    allowed = await client.get("/tickets?status=open", headers=auth_headers(staff))

    assert denied.status_code == 403
    assert allowed.status_code == 200
    assert allowed.json()["total"] == 1


@pytest.mark.asyncio
async def test_get_ticket_enforces_ownership(client, student, other_student, staff, classifier):
    ticket = await _file_ticket(client, student)

    own = await client.get(f"/tickets/{ticket['id']}", headers=auth_headers(student))
    other = await client.get(f"/tickets/{ticket['id']}", headers=auth_headers(other_student))
    triage = await client.get(f"/tickets/{ticket['id']}", headers=auth_headers(staff))
    missing = await client.get(f"/tickets/{uuid.uuid4()}", headers=auth_headers(staff))

    assert own.status_code == 200
    assert other.status_code == 403
    assert triage.status_code == 200
    assert missing.status_code == 404
    assert missing.json()["detail"] == "Ticket not found"


# =============================================================================
# Comments and status
# =============================================================================

@pytest.mark.asyncio
async def test_comment_flow(client, student, other_student, staff, classifier):
    ticket = await _file_ticket(client, student)

    ok = await client.post(
        f"/tickets/{ticket['id']}/comments",
        json={"message": "Electrician will visit at 5pm"},
        headers=auth_headers(staff),
    )
    denied = await client.post(
        f"/tickets/{ticket['id']}/comments",
        json={"message": "Mine too"},
        headers=auth_headers(other_student),
    )
    detail = await client.get(f"/tickets/{ticket['id']}", headers=auth_headers(student))

    assert ok.status_code == 200
    assert ok.json() == {"message": "Comment added successfully"}
    assert denied.status_code == 403
    comments = detail.json()["comments"]
    assert [c["message"] for c in comments] == ["Electrician will visit at 5pm"]
    assert comments[0]["author"]["role"] == "staff"


@pytest.mark.asyncio
async def test_status_update_flow(client, student, staff, classifier, fake_channels):
    ticket = await _file_ticket(client, student)

    started = await client.put(
        f"/tickets/{ticket['id']}/status",
        json={"status": "in_progress", "assignedTo": str(staff.id), "version": 1},
        headers=auth_headers(staff),
    )
    resolved = await client.put(
        f"/tickets/{ticket['id']}/status",
        json={"status": "resolved", "resolutionDescription": "Fan replaced"},
        headers=auth_headers(staff),
    )

    assert started.status_code == 200
    assert started.json()["message"] == "Ticket status updated successfully"
    assert started.json()["ticket"]["assigned_to"]["id"] == str(staff.id)
    body = resolved.json()["ticket"]
    assert body["status"] == "resolved"
    assert body["resolution"]["description"] == "Fan replaced"
    assert body["version"] == 3


@pytest.mark.asyncio
async def test_student_status_update_is_denied(client, student, classifier):
    ticket = await _file_ticket(client, student)

    response = await client.put(
        f"/tickets/{ticket['id']}/status",
        json={"status": "resolved"},
        headers=auth_headers(student),
    )

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_invalid_transition_via_api(client, student, staff, classifier):
    ticket = await _file_ticket(client, student)
    await client.put(
        f"/tickets/{ticket['id']}/status", json={"status": "cancelled"}, headers=auth_headers(staff)
    )

    response = await client.put(
        f"/tickets/{ticket['id']}/status", json={"status": "open"}, headers=auth_headers(staff)
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid status transition"


@pytest.mark.asyncio
async def test_stale_version_conflicts(client, student, staff, classifier):
    ticket = await _file_ticket(client, student)
    await client.put(
        f"/tickets/{ticket['id']}/status",
        json={"status": "in_progress"},
        headers=auth_headers(staff),
    )

    response = await client.put(
        f"/tickets/{ticket['id']}/status",
        json={"status": "resolved", "version": 1},
        headers=auth_headers(staff),
    )

    assert response.status_code == 409


@pytest.mark.asyncio
async def test_status_body_validation_shape(client, student, staff, classifier):
    ticket = await _file_ticket(client, student)

    response = await client.put(
        f"/tickets/{ticket['id']}/status", json={}, headers=auth_headers(staff)
    )

    assert response.status_code == 400
    assert response.json()["detail"] == [{"field": "status", "message": "Field required"}]


@pytest.mark.asyncio
async def test_classification_override(client, student, staff, classifier):
    ticket = await _file_ticket(client, student)

    response = await client.patch(
        f"/tickets/{ticket['id']}/classification",
        json={"category": "water", "priority": "urgent"},
        headers=auth_headers(staff),
    )
    denied = await client.patch(
        f"/tickets/{ticket['id']}/classification",
        json={"priority": "low"},
        headers=auth_headers(student),
    )

    assert response.status_code == 200
    body = response.json()
    assert body["category"] == "water"
    assert body["ai_analysis"]["priority_source"] == "manual"
    assert denied.status_code == 403


# =============================================================================
# Health
# =============================================================================

@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


# =============================================================================
# Upload hardening
# =============================================================================

@pytest.mark.asyncio
async def test_content_type_never_shapes_the_storage_path(client, db, student, classifier):
    root = settings.LOCAL_STORAGE_PATH
    escaped = os.path.join(os.path.dirname(root), "escape_check")
    files = [("images", ("noext", PNG_BYTES, "image/../../../../escape_check"))]

    response = await client.post(
        "/tickets", data=_form(), files=files, headers=auth_headers(student)
    )

    assert response.status_code == 400
    assert response.json()["detail"][0] == {
        "field": "images",
        "message": "File extension '.' not allowed",
    }
    assert not os.path.exists(escaped)
    assert db.query(Ticket).count() == 0


@pytest.mark.asyncio
async def test_unlisted_content_type_is_rejected(client, student, classifier):
    files = [("images", ("fan.png", PNG_BYTES, "image/../escape_check"))]

    response = await client.post(
        "/tickets", data=_form(), files=files, headers=auth_headers(student)
    )

    assert response.status_code == 400
    assert "not an image" in response.json()["detail"][0]["message"]


def test_store_image_requires_an_allowed_extension():
    upload = storage_service.ImageUpload(
        filename="noext", content_type="image/png", size=3, file=io.BytesIO(b"abc")
    )

    with pytest.raises(ValueError):
        storage_service.store_image(upload)


@pytest.mark.asyncio
async def test_oversized_image_is_rejected(client, db, student, classifier, monkeypatch):
    monkeypatch.setattr(storage_service, "MAX_IMAGE_SIZE_BYTES", 16)
    files = [("images", ("fan.png", PNG_BYTES, "image/png"))]

    response = await client.post(
        "/tickets", data=_form(), files=files, headers=auth_headers(student)
    )

    assert response.status_code == 400
    assert "exceeds" in response.json()["detail"][0]["message"]
    assert db.query(Ticket).count() == 0


@pytest.mark.asyncio
async def test_oversized_request_is_rejected_before_sizing_files(
    client, student, classifier, monkeypatch
):
    monkeypatch.setattr(storage_service, "MAX_IMAGE_SIZE_BYTES", 1)

    async def unexpected(file):
        raise AssertionError("upload should not be inspected")

    monkeypatch.setattr(tickets_router, "get_upload_file_size", unexpected)
    files = [("images", ("big.png", b"\x00" * (80 * 1024), "image/png"))]

    response = await client.post(
        "/tickets", data=_form(), files=files, headers=auth_headers(student)
    )

    assert response.status_code == 400
    assert response.json()["detail"][0]["message"] == "Upload exceeds the allowed total size"


@pytest.mark.asyncio
async def test_upload_size_is_measured_without_moving_the_stream():
    upload = UploadFile(io.BytesIO(b"abcdef"), filename="fan.png")
    upload.file.seek(2)

    assert await get_upload_file_size(upload) == 6
    assert upload.file.tell() == 2


def test_content_length_limit():
    assert content_length_exceeds_limit(None, max_size_bytes=10) is False
    assert content_length_exceeds_limit("abc", max_size_bytes=10) is False
    assert content_length_exceeds_limit("100", max_size_bytes=10, overhead_bytes=0) is True
    assert content_length_exceeds_limit("10", max_size_bytes=10, overhead_bytes=0) is False


# =============================================================================
# Post-write side effects
# =============================================================================

@pytest.mark.asyncio
async def test_notification_failure_keeps_the_created_ticket(
    client, db, student, staff, classifier, monkeypatch
):
    classifier.priority = TicketPriority.URGENT

    async def broken(*args, **kwargs):
        raise SQLAlchemyError("notifications table unavailable")

    monkeypatch.setattr(notification_service, "escalate", broken)
    monkeypatch.setattr(notification_service, "notify_ticket_created", broken)

    response = await client.post("/tickets", data=_form(), headers=auth_headers(student))

    assert response.status_code == 201
    ticket_id = response.json()["ticket"]["id"]
    assert db.query(Ticket).filter(Ticket.id == uuid.UUID(ticket_id)).count() == 1
