import asyncio
import base64
import json
import socket

import httpx
import pytest
import uvicorn

from murmur.core.errors import ClassifierUnavailable
from murmur.main import app
from murmur.services.entities import ClassificationVerdict, Submission
from murmur.services.store.base import POSTS, comments_of


@pytest.fixture
async def client(backend):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


class TestSubmit:
    async def test_publish_then_feed(self, client, auth):
        resp = await client.post("/submissions", json={"content": "hello world"}, headers=auth("u1", "Alice"))
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "published"
        assert body["id"]
        assert "reason" not in body

        await client.post("/submissions", json={"content": "older?"}, headers=auth("u2"))
        feed = (await client.get("/feed")).json()
        assert feed[0]["content"] == "older?"
        assert feed[1]["id"] == body["id"]
        assert feed[1]["authorId"] == "u1"
        assert feed[1]["authorLabel"] == "Alice"
        assert feed[1]["createdAt"].endswith("Z")

    async def test_quarantine_hidden_from_feed(self, client, classifier, auth):
        classifier.verdict = ClassificationVerdict(is_violating=True, reason="hate_speech")
        resp = await client.post("/submissions", json={"content": "attack text"}, headers=auth("u1"))
        assert resp.status_code == 200
        assert resp.json() == {"status": "quarantined", "reason": "hate_speech"}
        feed = (await client.get("/feed")).json()
        assert all(p["content"] != "attack text" for p in feed)

    async def test_requires_token(self, client, classifier):
        resp = await client.post("/submissions", json={"content": "hi"})
        assert resp.status_code == 401
        assert resp.json() == {"error": "Unauthorized"}
        assert classifier.call_count == 0

    async def test_bad_token(self, client):
        resp = await client.post("/submissions", json={"content": "hi"}, headers={"Authorization": "Bearer junk"})
        assert resp.status_code == 401

    async def test_anonymous_when_optional(self, client, backend):
        backend.allow_anonymous = True
        resp = await client.post("/submissions", json={"content": "hi"})
        assert resp.status_code == 200
        post = (await client.get(f"/submissions/{resp.json()['id']}")).json()
        assert post["authorId"].startswith("anon-")
        assert post["authorLabel"] == "Anonymous"

    @pytest.mark.parametrize(
        "content,message",
        [("", "Content cannot be empty."), ("x" * 281, "Content cannot exceed 280 characters.")],
    )
    async def test_validation_errors(self, client, classifier, auth, content, message):
        resp = await client.post("/submissions", json={"content": content}, headers=auth("u1"))
        assert resp.status_code == 400
        assert resp.json() == {"error": message}
        assert classifier.call_count == 0

    async def test_missing_body_field(self, client, auth):
        resp = await client.post("/submissions", json={}, headers=auth("u1"))
        assert resp.status_code == 400
        assert "error" in resp.json()

    async def test_bad_attachment(self, client, auth):
        uri = "data:image/png;base64," + base64.b64encode(b"plain text").decode()
        resp = await client.post("/submissions", json={"content": "pic", "attachmentUri": uri}, headers=auth("u1"))
        assert resp.status_code == 400
        assert resp.json()["error"].startswith("Attachment must be an image")

    async def test_classifier_down_is_500(self, client, classifier, auth):
        classifier.error = ClassifierUnavailable()
        resp = await client.post("/submissions", json={"content": "hi"}, headers=auth("u1"))
        assert resp.status_code == 500
        assert resp.json() == {"error": "Could not moderate the submission. Please try again."}
        assert (await client.get("/feed")).json() == []

    async def test_request_id_echoed(self, client):
        resp = await client.get("/health", headers={"X-Request-ID": "abc123"})
        assert resp.json() == {"ok": True}
        assert resp.headers["X-Request-ID"] == "abc123"
        assert resp.headers["X-Content-Type-Options"] == "nosniff"


class TestThreads:
    async def test_comment_flow(self, client, auth):
        thread = (await client.post("/submissions", json={"content": "thread"}, headers=auth("u1"))).json()["id"]
        for text in ("a", "b"):
            resp = await client.post(
                "/submissions", json={"content": text, "parentThreadId": thread}, headers=auth("u2")
            )
            assert resp.json()["status"] == "published"
        comments = (await client.get(f"/threads/{thread}/comments")).json()
        assert [c["content"] for c in comments] == ["a", "b"]
        assert all(c["parentThreadId"] == thread for c in comments)
        assert [p["id"] for p in (await client.get("/feed")).json()] == [thread]

    async def test_unknown_parent(self, client, auth):
        resp = await client.post("/submissions", json={"content": "x", "parentThreadId": "nope"}, headers=auth("u1"))
        assert resp.status_code == 404
        assert resp.json() == {"error": "Post not found"}


class TestDelete:
    async def test_delete_rules(self, client, auth):
        post_id = (await client.post("/submissions", json={"content": "mine"}, headers=auth("u1"))).json()["id"]

        assert (await client.delete(f"/submissions/{post_id}")).status_code == 401

        resp = await client.delete(f"/submissions/{post_id}", headers=auth("u2"))
        assert resp.status_code == 403
        assert resp.json() == {"error": "Forbidden: You can only delete your own posts."}

        resp = await client.delete(f"/submissions/{post_id}", headers=auth("u1"))
        assert resp.status_code == 200
        assert resp.json() == {"success": True, "id": post_id}

        assert (await client.get(f"/submissions/{post_id}")).status_code == 404
        assert (await client.delete(f"/submissions/{post_id}", headers=auth("u1"))).status_code == 404


class TestReportAndScreen:
    async def test_report(self, client, auth):
        post_id = (await client.post("/submissions", json={"content": "spam spam"}, headers=auth("u1"))).json()["id"]
        resp = await client.post(f"/submissions/{post_id}/report", json={"reason": "spam"}, headers=auth("u2"))
        assert resp.status_code == 200
        assert resp.json()["success"] is True

        reports = await client.get("/moderation/reports", headers={"X-Admin-Token": "admin-token"})
        assert reports.status_code == 200
        [report] = reports.json()
        assert (report["targetId"], report["reason"], report["reporterId"]) == (post_id, "spam", "u2")

    async def test_other_needs_details(self, client, auth):
        post_id = (await client.post("/submissions", json={"content": "hmm"}, headers=auth("u1"))).json()["id"]
        resp = await client.post(f"/submissions/{post_id}/report", json={"reason": "other"}, headers=auth("u2"))
        assert resp.status_code == 400
        assert resp.json() == {"error": "Please specify a reason."}

    async def test_report_unknown_post(self, client, auth):
        resp = await client.post("/submissions/missing/report", json={"reason": "spam"}, headers=auth("u2"))
        assert resp.status_code == 404

    async def test_screen(self, client, classifier):
        classifier.verdict = ClassificationVerdict(is_violating=True, reason="mentions spiders")
        resp = await client.post("/screen", json={"content": "a spider!", "preferences": "spiders"})
        assert resp.json() == {"isSafe": False, "reason": "mentions spiders"}
        assert classifier.calls == [("a spider!", "spiders")]


class TestModerationViews:
    async def test_requires_admin_token(self, client):
        assert (await client.get("/moderation/quarantine")).status_code == 403
        resp = await client.get("/moderation/quarantine", headers={"X-Admin-Token": "wrong"})
        assert resp.status_code == 403
        assert resp.json() == {"error": "Forbidden"}

    async def test_quarantine_listing(self, client, classifier, auth):
        classifier.verdict = ClassificationVerdict(is_violating=True, reason="harassment")
        await client.post("/submissions", json={"content": "mean"}, headers=auth("u1"))
        resp = await client.get("/moderation/quarantine", headers={"X-Admin-Token": "admin-token"})
        [item] = resp.json()
        assert (item["content"], item["reason"], item["authorId"]) == ("mean", "harassment", "u1")
        assert item["flaggedAt"].endswith("Z")


class BrokenIdentity:
    async def verify(self, token):
        raise RuntimeError("identity backend exploded")


async def test_unhandled_error_logged_once(backend, caplog, auth):
    backend.identity = BrokenIdentity()
    transport = httpx.ASGITransport(app=app, raise_app_exceptions=False)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        resp = await c.delete("/submissions/anything", headers=auth("u1"))
    assert resp.status_code == 500
    assert resp.json() == {"error": "Internal error."}
    tracebacks = [r for r in caplog.records if r.exc_info]
    assert len(tracebacks) == 1
    assert tracebacks[0].getMessage() == "unhandled error"


@pytest.fixture
async def live_server(backend):
    """Runs the app on a real socket; streamed responses need a real server."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    server = uvicorn.Server(uvicorn.Config(app, lifespan="off", log_level="warning"))
    task = asyncio.create_task(server.serve(sockets=[sock]))
    while not server.started:
        if task.done():
            task.result()
            raise AssertionError("server exited during startup")
        await asyncio.sleep(0.01)
    yield f"http://127.0.0.1:{port}"
    server.should_exit = True
    await asyncio.wait_for(task, 5)
    sock.close()


async def read_event(lines) -> tuple:
    kind = None
    async for line in lines:
        if line.startswith("event: "):
            kind = line[len("event: "):]
        elif line.startswith("data: ") and kind:
            return kind, json.loads(line[len("data: "):])
    raise AssertionError("stream ended")


async def wait_for_no_subscribers(hub, collection: str) -> None:
    for _ in range(200):
        if hub.subscriber_count(collection) == 0:
            return
        await asyncio.sleep(0.01)
    raise AssertionError(f"{collection} still has subscribers")


class TestFeedStream:
    async def test_snapshot_live_add_and_remove(self, live_server, backend, alice):
        engine = backend.engine
        existing = (await engine.submit(Submission(content="already here"), alice)).post_id

        async with httpx.AsyncClient(base_url=live_server, timeout=5) as c:
            async with c.stream("GET", "/feed/stream") as resp:
                assert resp.status_code == 200
                assert resp.headers["content-type"].startswith("text/event-stream")
                lines = resp.aiter_lines()

                kind, data = await asyncio.wait_for(read_event(lines), 2)
                assert (kind, data["id"], data["content"]) == ("added", existing, "already here")
                assert data["createdAt"].endswith("Z")

                fresh = (await engine.submit(Submission(content="just now"), alice)).post_id
                kind, data = await asyncio.wait_for(read_event(lines), 2)
                assert (kind, data["id"], data["authorId"]) == ("added", fresh, "u1")

                await engine.delete(existing, alice)
                kind, data = await asyncio.wait_for(read_event(lines), 2)
                assert (kind, data["id"]) == ("removed", existing)

        # A change after the client left lets the stream notice the disconnect.
        await engine.submit(Submission(content="nobody listening"), alice)
        await wait_for_no_subscribers(backend.store.hub, POSTS)

    async def test_thread_stream(self, live_server, backend, alice, bob):
        engine = backend.engine
        thread = (await engine.submit(Submission(content="thread"), alice)).post_id

        async with httpx.AsyncClient(base_url=live_server, timeout=5) as c:
            async with c.stream("GET", "/feed/stream", params={"threadId": thread}) as resp:
                lines = resp.aiter_lines()
                await engine.submit(Submission(content="top-level noise"), alice)
                reply = (await engine.submit(Submission(content="reply", parent_thread_id=thread), bob)).post_id
                kind, data = await asyncio.wait_for(read_event(lines), 2)
                assert (kind, data["id"], data["parentThreadId"]) == ("added", reply, thread)

        await engine.submit(Submission(content="late", parent_thread_id=thread), bob)
        await wait_for_no_subscribers(backend.store.hub, comments_of(thread))
