"""In-memory stand-in for the entities backend, served through httpx.MockTransport."""

import asyncio
import copy
import json
from typing import Any

import httpx

from freepare_panel.client import PanelClient
from freepare_panel.models import APIConfiguration, Entity, EntityType

BASE_URL = "http://backend.test/api"

_PREFIX = {"exam": "E", "subject": "S", "topic": "T", "paper": "P"}


class FakeBackend:
    """Minimal implementation of the /entities endpoints.

    Ids are the type initial plus a global counter (E1, S2, ...). Failures are
    queued per ``(method, path)`` with :meth:`fail_next`.
    """

    def __init__(self) -> None:
        self.roots: list[dict[str, Any]] = []
        self.counter = 0
        self.requests: list[tuple[str, str, Any]] = []
        self.gate: asyncio.Event | None = None
        self._failures: dict[tuple[str, str], list[dict[str, Any]]] = {}

    # -- test controls -------------------------------------------------

    def fail_next(
        self,
        method: str,
        path: str,
        status: int = 500,
        message: str | None = None,
        transport: bool = False,
        times: int = 1,
        after: int = 0,
    ) -> None:
        """Fail the next ``times`` matching requests, letting ``after`` through first."""
        queue = self._failures.setdefault((method, path), [])
        queue.extend([None] * after)
        queue.extend([{"status": status, "message": message, "transport": transport}] * times)

    def calls(self, method: str, path: str) -> list[Any]:
        return [body for m, p, body in self.requests if m == method and p == path]

    def find(self, entity_id: str) -> dict[str, Any] | None:
        found = self._locate(entity_id)
        return found[0][found[1]] if found else None

    def seed(self, name: str, entity_type: str, parent_id: str | None = None, **extra: Any) -> str:
        return self._create({"name": name, "type": entity_type, "parentId": parent_id, **extra})["_id"]

    # -- transport -----------------------------------------------------

    async def handler(self, request: httpx.Request) -> httpx.Response:
        if self.gate is not None:
            await self.gate.wait()

        path = request.url.path.removeprefix("/api")
        body = json.loads(request.content) if request.content else None
        self.requests.append((request.method, path, body))

        queued = self._failures.get((request.method, path))
        failure = queued.pop(0) if queued else None
        if failure is not None:
            if failure["transport"]:
                raise httpx.ConnectError("connection refused", request=request)
            payload = {"message": failure["message"]} if failure["message"] else {}
            return httpx.Response(failure["status"], json=payload)

        parts = [p for p in path.split("/") if p]
        if parts == ["entities"] and request.method == "GET":
            return httpx.Response(200, json=copy.deepcopy(self.roots))
        if parts == ["entities"] and request.method == "POST":
            return httpx.Response(201, json=copy.deepcopy(self._create(body)))
        if parts == ["entities", "reorder"] and request.method == "POST":
            self.roots = copy.deepcopy(body["updatedData"])
            return httpx.Response(200, json={"message": "Reordered"})
        if len(parts) >= 2 and parts[0] == "entities":
            node = self.find(parts[1])
            if node is None:
                return httpx.Response(404, json={"message": "Entity not found"})
            if request.method == "DELETE":
                siblings, index = self._locate(parts[1])
                del siblings[index]
                for position, sibling in enumerate(siblings):
                    sibling["position"] = position
                return httpx.Response(200, json={"message": "Entity deleted"})
            if request.method == "PUT" and len(parts) == 3 and parts[2] == "renameTestName":
                node["testName"] = body["testName"]
                return httpx.Response(200, json=copy.deepcopy(node))
            if request.method == "PUT":
                node["name"] = body["name"]
                return httpx.Response(200, json=copy.deepcopy(node))
        return httpx.Response(405, json={"message": "Unsupported"})

    # -- storage -------------------------------------------------------

    def _create(self, body: dict[str, Any]) -> dict[str, Any]:
        self.counter += 1
        parent_id = body.get("parentId")
        siblings = self.roots if parent_id is None else self.find(parent_id)["children"]
        node = {
            "_id": f"{_PREFIX[body['type']]}{self.counter}",
            "name": body["name"],
            "type": body["type"],
            "parentId": parent_id,
            "position": len(siblings),
            "children": [],
            "__v": 0,
        }
        for key in ("description", "testName", "videoLink"):
            if body.get(key) is not None:
                node[key] = body[key]
        siblings.append(node)
        return node

    def _locate(self, entity_id: str, nodes: list[dict[str, Any]] | None = None):
        nodes = self.roots if nodes is None else nodes
        for index, node in enumerate(nodes):
            if node["_id"] == entity_id:
                return nodes, index
            found = self._locate(entity_id, node.get("children", []))
            if found:
                return found
        return None


async def redirect_loop(request: httpx.Request) -> httpx.Response:
    """Every request is redirected back to itself."""
    return httpx.Response(302, headers={"Location": str(request.url)})


async def scalar_body(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json=5)


def make_client(backend: Any, read_max_retries: int = 3) -> PanelClient:
    """Client wired to ``backend.handler`` (a FakeBackend or any object with one)."""
    client = PanelClient(APIConfiguration(base_url=BASE_URL, read_max_retries=read_max_retries))
    client.retry_base_delay = 0
    client._client = httpx.AsyncClient(
        base_url=BASE_URL, transport=httpx.MockTransport(backend.handler), follow_redirects=True
    )
    return client


def entity(entity_id: str, name: str, entity_type: str, position: int = 0, *children: Entity, **extra: Any) -> Entity:
    """Shorthand for building test trees."""
    return Entity(
        id=entity_id,
        name=name,
        type=EntityType(entity_type),
        position=position,
        children=tuple(children),
        **extra,
    )
