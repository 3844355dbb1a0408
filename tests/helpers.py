"""Test helpers: an in-process fake of the BugLense REST API and payload builders."""

from __future__ import annotations

import json
from typing import Any, Awaitable, Callable, Dict, List, Tuple, Union

import httpx

BASE_URL = "http://buglense.test/api"
_PREFIX = "/api"

Responder = Callable[[httpx.Request], Union[httpx.Response, Awaitable[httpx.Response]]]


class FakeApi:
    """Routes ``(method, path)`` pairs to canned responses via ``httpx.MockTransport``.

    Unknown routes answer 404 so a test notices an unexpected request.
    """

    def __init__(self) -> None:
        self.routes: Dict[Tuple[str, str], Responder] = {}
        self.requests: List[httpx.Request] = []

    def add(
        self,
        method: str,
        path: str,
        *,
        status: int = 200,
        json: Any = None,
        text: str | None = None,
        handler: Responder | None = None,
    ) -> None:
        if handler is None:
            def handler(_request: httpx.Request) -> httpx.Response:
                if text is not None:
                    return httpx.Response(status, text=text)
                if json is None:
                    return httpx.Response(status)
                return httpx.Response(status, json=json)

        self.routes[(method.upper(), path)] = handler

    def __call__(self, request: httpx.Request) -> Any:
        self.requests.append(request)
        path = request.url.path
        if path.startswith(_PREFIX):
            path = path[len(_PREFIX):]
        handler = self.routes.get((request.method, path))
        if handler is None:
            return httpx.Response(404, json={"message": f"No route for {request.method} {path}"})
        return handler(request)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self), base_url=BASE_URL)

    def last_json(self) -> Any:
        return json.loads(self.requests[-1].content or b"null")

    def calls(self, method: str, path: str) -> int:
        return sum(
            1
            for request in self.requests
            if request.method == method and request.url.path == _PREFIX + path
        )


def user_payload(user_id: str = "U1", **overrides: Any) -> Dict[str, Any]:
    payload = {
        "id": user_id,
        "name": "Ada Lovelace",
        "email": "ada@example.com",
        "role": "developer",
        "createdAt": "2024-01-01T00:00:00Z",
    }
    payload.update(overrides)
    return payload


def project_payload(project_id: str = "P1", **overrides: Any) -> Dict[str, Any]:
    payload = {
        "id": project_id,
        "name": f"Project {project_id}",
        "key": project_id.lower(),
        "teamId": "T1",
        "createdAt": "2024-01-01T00:00:00Z",
        "updatedAt": "2024-01-01T00:00:00Z",
    }
    payload.update(overrides)
    return payload


def bug_payload(
    bug_id: str,
    *,
    status: str = "Open",
    priority: str = "Medium",
    title: str | None = None,
    description: str = "Something went wrong somewhere.",
    assignee: str | None = None,
    project: str = "P1",
) -> Dict[str, Any]:
    payload = {
        "id": bug_id,
        "title": title or f"Bug {bug_id}",
        "description": description,
        "status": status,
        "priority": priority,
        "projectId": project,
        "reporterId": "U1",
        "createdAt": "2024-01-02T00:00:00Z",
        "updatedAt": "2024-01-02T00:00:00Z",
    }
    if assignee is not None:
        payload["assigneeId"] = assignee
    return payload


def team_payload(team_id: str = "T1", *, members: int = 2) -> Dict[str, Any]:
    return {
        "id": team_id,
        "name": f"Team {team_id}",
        "ownerId": "U1",
        "members": [
            {
                "id": f"M{index}",
                "userId": f"U{index}",
                "user": user_payload(f"U{index}", name=f"Member {index}"),
                "teamId": team_id,
                "role": "owner" if index == 1 else "member",
                "joinedAt": "2024-01-01T00:00:00Z",
            }
            for index in range(1, members + 1)
        ],
        "createdAt": "2024-01-01T00:00:00Z",
        "updatedAt": "2024-01-01T00:00:00Z",
    }
