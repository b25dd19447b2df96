"""Tests for the REST endpoints, with in-memory backends."""

import pytest
from fastapi.testclient import TestClient

from chatpdf.core.dependencies import (
    get_answer_generator,
    get_conversation_store,
    get_object_store,
    get_registry,
    get_upload_handler,
)
from chatpdf.ingestion_service import app as ingestion_app
from chatpdf.models.document import DocumentStatus
from chatpdf.query_service import app as query_app
from chatpdf.services.uploads import UploadHandler

HEADERS = {"X-User-Id": "user-1"}
PROMPT = {"fileName": "paper.pdf", "prompt": "What is attention?"}


@pytest.fixture()
def client(registry, conversation_store, answer_generator, object_store):
    query_app.dependency_overrides = {
        get_registry: lambda: registry,
        get_conversation_store: lambda: conversation_store,
        get_answer_generator: lambda: answer_generator,
        get_object_store: lambda: object_store,
    }
    yield TestClient(query_app)
    query_app.dependency_overrides = {}


@pytest.fixture()
def conversation_id(ready_document, client):
    response = client.post("/doc/doc-1", headers=HEADERS)
    assert response.status_code == 201
    return response.json()["conversationid"]


def test_requests_without_user_rejected(client):
    assert client.get("/doc").status_code == 401


def test_list_documents(ready_document, client):
    response = client.get("/doc", headers=HEADERS)

    body = response.json()
    assert response.status_code == 200
    assert body["total"] == 1
    assert body["documents"][0]["status"] == "ready"
    assert client.get("/doc", headers={"X-User-Id": "user-2"}).json()["total"] == 0


def test_conversation_on_unknown_document(client):
    assert client.post("/doc/missing", headers=HEADERS).status_code == 404


def test_prompt_answered_and_recorded(client, conversation_id):
    response = client.post(f"/doc-1/{conversation_id}", json=PROMPT, headers=HEADERS)

    assert response.status_code == 200
    assert response.json()["answer"] == "Answer to: What is attention?"
    assert [s["chunk_index"] for s in response.json()["sources"]] == [2, 0]

    conversation = client.get(f"/doc/doc-1/{conversation_id}", headers=HEADERS).json()
    assert [m["role"] for m in conversation["messages"]] == ["human", "assistant"]
    assert conversation["document"]["documentid"] == "doc-1"


def test_prompt_on_document_still_processing(client, conversation_id, registry):
    registry.set_status("user-1", "doc-1", DocumentStatus.PROCESSING)

    response = client.post(f"/doc-1/{conversation_id}", json=PROMPT, headers=HEADERS)

    assert response.status_code == 409


def test_generation_failure_maps_to_bad_gateway(client, conversation_id, llm):
    llm.fail = True

    response = client.post(f"/doc-1/{conversation_id}", json=PROMPT, headers=HEADERS)

    conversation = client.get(f"/doc/doc-1/{conversation_id}", headers=HEADERS).json()
    assert response.status_code == 502
    assert [m["role"] for m in conversation["messages"]] == ["human"]


def test_generation_timeout_maps_to_gateway_timeout(client, conversation_id, llm):
    llm.delay = 1.0

    response = client.post(
        f"/doc-1/{conversation_id}?timeout=0.01", json=PROMPT, headers=HEADERS)

    assert response.status_code == 504


def test_unknown_conversation(ready_document, client):
    response = client.post("/doc-1/missing", json=PROMPT, headers=HEADERS)

    assert response.status_code == 404
    assert client.get("/doc/doc-1/missing", headers=HEADERS).status_code == 404


def test_empty_prompt_rejected(client, conversation_id):
    response = client.post(
        f"/doc-1/{conversation_id}", json={"fileName": "paper.pdf", "prompt": ""},
        headers=HEADERS)

    assert response.status_code == 422


def test_presigned_url(client):
    response = client.get(
        "/generate_presigned_url", params={"file_name": "paper.pdf"}, headers=HEADERS)

    body = response.json()
    assert response.status_code == 200
    assert body["key"] == f"user-1/{body['documentid']}/paper.pdf"
    assert body["presignedurl"].startswith("https://uploads.example.com/user-1/")


def test_presigned_url_rejects_path_in_file_name(client):
    response = client.get(
        "/generate_presigned_url", params={"file_name": "a/b.pdf"}, headers=HEADERS)

    assert response.status_code == 400


def test_upload_event_registers_document(registry, queue):
    ingestion_app.dependency_overrides = {
        get_upload_handler: lambda: UploadHandler(registry=registry, queue=queue),
    }
    try:
        response = TestClient(ingestion_app).post("/upload-events", json={
            "Records": [{
                "eventName": "ObjectCreated:Put",
                "s3": {"object": {"key": "user-1/doc-9/paper.pdf", "size": 10}},
            }],
        })
    finally:
        ingestion_app.dependency_overrides = {}

    assert response.status_code == 202
    assert response.json() == {"documents": ["doc-9"]}
    assert queue.jobs[0].documentid == "doc-9"
