"""
本地 Mock GitLab API server（只覆盖 review 闭环用到的接口）。

用途：
- 在没有真实 GitLab 的情况下，本地跑通：
  Webhook -> get MR changes / MR 详情 / 文件内容 -> post MR discussion
- 测试里通过 `httpx.ASGITransport` 直接挂载 `app`

启动：
  python -m mr_review.dev.mock_gitlab_server
"""

from __future__ import annotations

import time

import uvicorn
from fastapi import FastAPI
from fastapi import HTTPException
from fastapi import Header
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel

MOCK_TOKEN = "mock-token"
BASE_SHA = "0000000000000000000000000000000000000000"
HEAD_SHA = "1111111111111111111111111111111111111111"

_FILES: dict[str, str] = {
    "src/example.ts": (
        "export function add(a: number, b: number): number {\n"
        "  // TODO: handle undefined inputs\n"
        "  return a + b;\n"
        "}\n"
        "\n"
        "export function sub(a: number, b: number): number {\n"
        "  return a - b;\n"
        "}\n"
    ),
}


class DiscussionCreateRequest(BaseModel):
    body: str
    position: dict[str, object]


def _diff_refs() -> dict[str, str]:
    return {"base_sha": BASE_SHA, "head_sha": HEAD_SHA, "start_sha": BASE_SHA}


def _default_changes_response() -> dict[str, object]:
    return {
        "changes": [
            {
                "old_path": "src/example.ts",
                "new_path": "src/example.ts",
                "a_mode": "100644",
                "b_mode": "100644",
                "new_file": False,
                "renamed_file": False,
                "deleted_file": False,
                "diff": (
                    "@@ -1,3 +1,8 @@\n"
                    " export function add(a: number, b: number): number {\n"
                    "+  // TODO: handle undefined inputs\n"
                    "   return a + b;\n"
                    " }\n"
                    "+\n"
                    "+export function sub(a: number, b: number): number {\n"
                    "+  return a - b;\n"
                    "+}\n"
                ),
            },
            {
                "old_path": "src/legacy.js",
                "new_path": "src/legacy.js",
                "new_file": False,
                "renamed_file": False,
                "deleted_file": True,
                "diff": "@@ -1,1 +0,0 @@\n-module.exports = {};\n",
            },
        ],
        "diff_refs": _diff_refs(),
    }


app = FastAPI(title="Mock GitLab API", version="0.1.0")

_discussions: list[dict[str, object]] = []


def _check_token(token: str | None) -> None:
    if token != MOCK_TOKEN:
        raise HTTPException(status_code=401, detail="401 Unauthorized")


@app.get("/api/v4/projects/{project_id}/merge_requests/{mr_iid}/changes")
async def get_merge_request_changes(
    project_id: int,
    mr_iid: int,
    private_token: str | None = Header(default=None, alias="PRIVATE-TOKEN"),
) -> dict[str, object]:
    _check_token(private_token)
    if mr_iid == 404:
        raise HTTPException(status_code=404, detail="404 Not found")
    return _default_changes_response()


@app.get("/api/v4/projects/{project_id}/merge_requests/{mr_iid}")
async def get_merge_request(
    project_id: int,
    mr_iid: int,
    private_token: str | None = Header(default=None, alias="PRIVATE-TOKEN"),
) -> dict[str, object]:
    _check_token(private_token)
    if mr_iid == 404:
        raise HTTPException(status_code=404, detail="404 Not found")
    return {
        "iid": mr_iid,
        "project_id": project_id,
        "title": "Add sub()",
        "description": "mock MR",
        "source_branch": "feature/sub",
        "target_branch": "main",
        "sha": HEAD_SHA,
        "author": {"username": "alice", "name": "Alice"},
        "diff_refs": _diff_refs(),
    }


@app.get("/api/v4/projects/{project_id}/repository/files/{file_path:path}/raw")
async def get_file_raw(
    project_id: int,
    file_path: str,
    ref: str,
    private_token: str | None = Header(default=None, alias="PRIVATE-TOKEN"),
) -> PlainTextResponse:
    _check_token(private_token)
    content = _FILES.get(file_path)
    if content is None:
        raise HTTPException(status_code=404, detail="404 File Not Found")
    return PlainTextResponse(content)


@app.post("/api/v4/projects/{project_id}/merge_requests/{mr_iid}/discussions", status_code=201)
async def create_discussion(
    project_id: int,
    mr_iid: int,
    req: DiscussionCreateRequest,
    private_token: str | None = Header(default=None, alias="PRIVATE-TOKEN"),
) -> dict[str, object]:
    _check_token(private_token)
    if "new_line" not in req.position or "head_sha" not in req.position:
        raise HTTPException(status_code=400, detail="position is invalid")
    discussion_id = f"d{len(_discussions) + 1}"
    _discussions.append(
        {
            "id": discussion_id,
            "body": req.body,
            "position": req.position,
            "project_id": project_id,
            "mr_iid": mr_iid,
            "created_at": int(time.time()),
        }
    )
    return {"id": discussion_id, "individual_note": False, "notes": [{"body": req.body}]}


@app.get("/__debug__/discussions")
async def debug_discussions() -> dict[str, object]:
    return {"count": len(_discussions), "discussions": _discussions}


def main() -> None:
    uvicorn.run(app, host="127.0.0.1", port=9002)


if __name__ == "__main__":
    main()
