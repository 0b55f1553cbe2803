"""End-to-end paste interactions: real loader, real uploaders, fake sinks."""

from datetime import UTC, datetime
import re
import uuid

import httpx
import pytest

from paste_upload.cache import MemoryStore
from paste_upload.core.types import PayloadPart, RawPayload
from paste_upload.loader import RemoteFetcher
from paste_upload.orchestrator import UploadOrchestrator
from paste_upload.uploaders import s3 as s3_module
from tests.conftest import PNG_BYTES
from tests.fakes import FakeS3Client, FakeUser, StaticSettings

pytestmark = pytest.mark.integration

DOC = "file:///ws/notes.md"
GIF_BYTES = b"GIF89a\x01\x00\x01\x00\x00\x00\x00;"
S3 = {"region": "us-east-1", "bucket": "bucket"}


@pytest.fixture
def client(monkeypatch):
    client = FakeS3Client()
    monkeypatch.setattr(s3_module, "_default_client_factory", lambda _kwargs: client)
    return client


def _orchestrator(settings, user, editor, fetcher=None):
    return UploadOrchestrator(
        settings, ui=user, editor=editor, store=MemoryStore(), fetcher=fetcher
    )


def _image_server(request: httpx.Request) -> httpx.Response:
    if request.url.path == "/anim.gif":
        return httpx.Response(200, headers={"content-type": "image/gif"}, content=GIF_BYTES)
    if request.url.path == "/photo.png":
        return httpx.Response(200, headers={"content-type": "image/png"}, content=PNG_BYTES)
    return httpx.Response(404)


@pytest.mark.asyncio
async def test_generic_png_gets_uuid_name_and_detected_type(
    tmp_path, user, editor, client
):
    settings = StaticSettings(
        {"file_naming_method": "uuid", "mime_detection": "content", "s3": S3},
        project_root=tmp_path,
    )
    orchestrator = _orchestrator(settings, user, editor)
    payload = RawPayload.from_bytes(PNG_BYTES, filename="image", mime="")

    files = await orchestrator.loader_for(None).prepare_files_to_upload(payload)
    [file] = files
    assert uuid.UUID(file.name).version == 4
    assert file.mime == "image/png"
    assert file.extension == "png"

    text = await orchestrator.handle_payload(payload, document_uri=DOC)

    now = datetime.now(UTC)
    [put] = client.operations("put_object")
    assert re.fullmatch(rf"{now:%Y}/\d\d/[0-9a-f-]{{36}}\.png", put["Key"])
    assert put["ContentType"] == "image/png"
    assert text == f"![{put['Key'].rsplit('/', 1)[1][:-4]}](https://s3.us-east-1.amazonaws.com/bucket/{put['Key']})"
    assert editor.edits == [(DOC, text)]


@pytest.mark.asyncio
async def test_uri_list_mixes_local_remote_and_data_uris(tmp_path, user, editor, client):
    local = tmp_path / "outside" / "chart.png"
    local.parent.mkdir()
    local.write_bytes(PNG_BYTES + b"local")
    settings = StaticSettings(
        {"multiple_files": "allow", "s3": {**S3, "prefix": "up/"}}, project_root=tmp_path
    )
    fetcher = RemoteFetcher(transport=httpx.MockTransport(_image_server))
    orchestrator = _orchestrator(settings, user, editor, fetcher)
    payload = RawPayload.from_uris(
        "# copied from a browser",
        local.as_uri(),
        "https://img.example.com/anim.gif",
        "https://img.example.com/gone.png",
        "data:text/plain,hello%20world",
    )

    text = await orchestrator.handle_payload(payload, document_uri=DOC)

    base = "https://s3.us-east-1.amazonaws.com/bucket/up"
    snippets = text.split(" ")
    assert snippets[0] == f"![chart]({base}/chart.png)"
    assert snippets[1] == f"![anim]({base}/anim.gif)"
    assert re.fullmatch(rf"\[[0-9a-f]+\.txt\]\({base}/[0-9a-f]+\.txt\)", snippets[2])
    assert len(snippets) == 3
    assert client.objects[("bucket", "up/anim.gif")] == GIF_BYTES
    assert user.errors == []


@pytest.mark.asyncio
async def test_workspace_files_are_not_reuploaded(tmp_path, user, editor, workspace, client):
    inside = workspace / "assets" / "old.png"
    inside.parent.mkdir()
    inside.write_bytes(PNG_BYTES)
    settings = StaticSettings({"s3": S3}, project_root=tmp_path)
    orchestrator = _orchestrator(settings, user, editor)

    text = await orchestrator.handle_payload(
        RawPayload.from_uris(inside.as_uri()), document_uri=DOC
    )

    assert text is None
    assert client.calls == []


@pytest.mark.asyncio
async def test_original_image_replaces_clipboard_bitmap(tmp_path, user, editor, client):
    settings = StaticSettings(
        {"retrieve_original_image": True, "s3": {**S3, "prefix": ""}},
        project_root=tmp_path,
    )
    fetcher = RemoteFetcher(transport=httpx.MockTransport(_image_server))
    orchestrator = _orchestrator(settings, user, editor, fetcher)
    payload = RawPayload(
        parts=(
            PayloadPart(mime_hint="image/png", data=PNG_BYTES, filename="image.png"),
            PayloadPart(
                mime_hint="text/html",
                text='<p><img alt="x" src="https://img.example.com/anim.gif"></p>',
            ),
        )
    )

    text = await orchestrator.handle_payload(payload, document_uri=DOC)

    assert text == "![anim](https://s3.us-east-1.amazonaws.com/bucket/anim.gif)"
    assert [kw["Key"] for kw in client.operations("put_object")] == ["anim.gif"]


@pytest.mark.asyncio
async def test_declined_batch_uploads_nothing(tmp_path, editor, client):
    user = FakeUser(confirm=False)
    settings = StaticSettings({"s3": S3}, project_root=tmp_path)
    orchestrator = _orchestrator(settings, user, editor)
    payload = RawPayload(
        parts=tuple(
            PayloadPart(mime_hint="image/png", data=PNG_BYTES + bytes([i]), filename=f"{i}.png")
            for i in range(3)
        )
    )

    assert await orchestrator.handle_payload(payload, document_uri=DOC) is None
    assert user.questions == ["Upload 3 files?"]
    assert client.calls == []
    assert editor.edits == []


@pytest.mark.asyncio
async def test_upload_then_undo_removes_object(tmp_path, editor, client):
    user = FakeUser(pick=0)
    settings = StaticSettings({"s3": {**S3, "prefix": ""}}, project_root=tmp_path)
    orchestrator = _orchestrator(settings, user, editor)

    await orchestrator.handle_payload(
        RawPayload.from_bytes(PNG_BYTES, filename="shot.png"), document_uri=DOC
    )
    assert ("bucket", "shot.png") in client.objects

    assert await orchestrator.undo_menu() is True
    assert client.objects == {}
    assert len(orchestrator.history) == 0
