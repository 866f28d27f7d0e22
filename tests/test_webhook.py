from __future__ import annotations

from fastapi import FastAPI
from fastapi.testclient import TestClient

from mr_review.config import GitLabConfig
from mr_review.gitlab.webhook import build_gitlab_webhook_router
from mr_review.review.errors import TransportError
from mr_review.review.models import MergeRequestInfo

SECRET = "s3cret"


def _event(action: str = "open", object_kind: str = "merge_request") -> dict[str, object]:
    return {
        "object_kind": object_kind,
        "user": {"username": "alice", "name": "Alice"},
        "project": {"id": 42, "web_url": "https://gitlab.example.com/g/p"},
        "object_attributes": {
            "iid": 7,
            "action": action,
            "title": "Add feature",
            "description": "desc",
            "source_branch": "feature",
            "target_branch": "main",
            "last_commit": {"id": "abc123"},
        },
    }


def _build() -> tuple[TestClient, list[MergeRequestInfo]]:
    received: list[MergeRequestInfo] = []

    async def handler(mr_info: MergeRequestInfo) -> None:
        received.append(mr_info)

    async def load_merge_request(project_id: int, mr_iid: int) -> MergeRequestInfo:
        if mr_iid == 404:
            raise TransportError(status_code=404, message="not found")
        if mr_iid == 500:
            raise TransportError(status_code=500, message="boom")
        return MergeRequestInfo(
            project_id=project_id,
            mr_iid=mr_iid,
            source_branch="feature",
            target_branch="main",
            author="bob",
            title="Manual",
        )

    config = GitLabConfig(base_url="https://gitlab.example.com", token="t", webhook_secret=SECRET)
    app = FastAPI()
    app.include_router(build_gitlab_webhook_router(config=config, handler=handler, load_merge_request=load_merge_request))
    return TestClient(app), received


def test_webhook_rejects_bad_token() -> None:
    client, received = _build()
    response = client.post("/gitlab/webhook", json=_event(), headers={"X-Gitlab-Token": "nope"})
    assert response.status_code == 401
    assert received == []


def test_webhook_accepts_open_event() -> None:
    client, received = _build()
    response = client.post("/gitlab/webhook", json=_event(), headers={"X-Gitlab-Token": SECRET})
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert len(received) == 1
    info = received[0]
    assert (info.project_id, info.mr_iid, info.author, info.head_sha) == (42, 7, "alice", "abc123")
    assert info.source_branch == "feature"


def test_webhook_ignores_other_actions_and_kinds() -> None:
    client, received = _build()
    for payload in (_event(action="close"), _event(action="merge"), _event(object_kind="push")):
        response = client.post("/gitlab/webhook", json=payload, headers={"X-Gitlab-Token": SECRET})
        assert response.json() == {"status": "ignored"}
    assert received == []


def test_webhook_accepts_update_and_reopen() -> None:
    client, received = _build()
    for action in ("update", "reopen"):
        client.post("/gitlab/webhook", json=_event(action=action), headers={"X-Gitlab-Token": SECRET})
    assert len(received) == 2


def test_manual_review_schedules_pipeline() -> None:
    client, received = _build()
    response = client.post("/api/review", params={"project_id": 3, "mr_iid": 5})
    assert response.status_code == 200
    assert response.json()["title"] == "Manual"
    assert [(r.project_id, r.mr_iid) for r in received] == [(3, 5)]


def test_manual_review_lookup_failures() -> None:
    client, received = _build()
    assert client.post("/api/review", params={"project_id": 3, "mr_iid": 404}).status_code == 404
    assert client.post("/api/review", params={"project_id": 3, "mr_iid": 500}).status_code == 502
    assert client.post("/api/review", params={"project_id": 0, "mr_iid": 5}).status_code == 400
    assert client.post("/api/review", params={"project_id": 3}).status_code == 422
    assert received == []


def test_webhook_malformed_payload() -> None:
    client, received = _build()
    payload = {"object_kind": "merge_request", "object_attributes": {"iid": "x"}}
    response = client.post("/gitlab/webhook", json=payload, headers={"X-Gitlab-Token": SECRET})
    assert response.status_code == 422
    assert received == []
