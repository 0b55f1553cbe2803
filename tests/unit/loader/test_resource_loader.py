"""Resource loader stages: extraction, identity, policies, original image."""

import base64
import dataclasses
import uuid

import httpx
import pytest

from paste_upload.config.types import LoaderConfig
from paste_upload.core.types import PayloadPart, RawPayload
from paste_upload.loader import RemoteFetcher, ResourceLoader, find_image_source
from tests.conftest import PNG_BYTES
from tests.fakes import FakeEditor, FakeUser

BASE_CONFIG = LoaderConfig(
    enabled=True,
    size_limit=0,
    mime_detection="content",
    filename_policy="keep-original",
    file_naming_method="content-hash",
    image_snippet="![${filenameWithoutExtension}](${url})",
    default_snippet="[${filename}](${url})",
    multiple_files="allow",
    mime_filter="",
    ignore_workspace_files=True,
    retrieve_original_image=False,
)


def _config(**changes) -> LoaderConfig:
    return dataclasses.replace(BASE_CONFIG, **changes)


def _attachments(*names: str | None, data: bytes = PNG_BYTES, mime: str = "") -> RawPayload:
    return RawPayload(
        parts=tuple(PayloadPart(mime_hint=mime, data=data, filename=n) for n in names)
    )


def _loader(config, *, hasher, ui=None, editor=None, fetcher=None) -> ResourceLoader:
    return ResourceLoader(
        config,
        ui=ui or FakeUser(),
        editor=editor or FakeEditor(),
        hasher=hasher,
        fetcher=fetcher,
    )


def _mock_fetcher(routes: dict[tuple[str, str], httpx.Response]) -> RemoteFetcher:
    def handler(request: httpx.Request) -> httpx.Response:
        try:
            return routes[(request.method, str(request.url))]
        except KeyError:
            return httpx.Response(404)

    return RemoteFetcher(transport=httpx.MockTransport(handler))


class TestIdentity:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_disabled_scope_yields_nothing(self, hasher):
        loader = _loader(_config(enabled=False), hasher=hasher)
        assert await loader.prepare_files_to_upload(_attachments("a.png")) == []

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_generic_image_name_gets_uuid_and_sniffed_type(self, hasher):
        loader = _loader(_config(file_naming_method="uuid"), hasher=hasher)

        [file] = await loader.prepare_files_to_upload(_attachments("image"))

        assert uuid.UUID(file.name)
        assert file.mime == "image/png"
        assert file.extension == "png"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_original_name_is_kept(self, hasher):
        loader = _loader(_config(), hasher=hasher)

        [file] = await loader.prepare_files_to_upload(_attachments("Shot.PNG"))

        assert (file.name, file.extension, file.mime) == ("Shot", "png", "image/png")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_always_generate_replaces_name_but_keeps_extension(self, hasher):
        loader = _loader(
            _config(filename_policy="always-generate", file_naming_method="content-hash-short"),
            hasher=hasher,
        )

        [file] = await loader.prepare_files_to_upload(_attachments("holiday.png"))

        assert file.name == hasher.hash(PNG_BYTES)[:8]
        assert file.extension == "png"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_cancelled_name_prompt_drops_file(self, hasher):
        loader = _loader(
            _config(file_naming_method="prompt"), hasher=hasher, ui=FakeUser(text=None)
        )
        assert await loader.prepare_files_to_upload(_attachments(None)) == []

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_extension_detection_ignores_content(self, hasher):
        loader = _loader(_config(mime_detection="extension"), hasher=hasher)

        [file] = await loader.prepare_files_to_upload(
            _attachments("notes.md", data=b"# title", mime="application/octet-stream")
        )

        assert file.mime == "text/markdown"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_no_detection_defaults_to_octet_stream(self, hasher):
        loader = _loader(_config(mime_detection="none"), hasher=hasher)

        [file] = await loader.prepare_files_to_upload(_attachments("blob", data=b"??"))

        assert file.mime == "application/octet-stream"
        assert file.extension == ""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_hint_fills_missing_extension(self, hasher):
        loader = _loader(_config(mime_detection="extension"), hasher=hasher)

        [file] = await loader.prepare_files_to_upload(
            _attachments("clip", data=b"\x00", mime="image/jpeg")
        )

        assert file.extension == "jpg"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_duplicate_names_get_numeric_suffixes(self, hasher):
        loader = _loader(_config(), hasher=hasher)

        files = await loader.prepare_files_to_upload(_attachments("a.png", "a.png", "a.png"))

        assert [f.name for f in files] == ["a", "a.1", "a.2"]
        assert [f.filename for f in files] == ["a.png", "a.1.png", "a.2.png"]


class TestPolicies:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_mime_filter_is_case_insensitive_search(self, hasher):
        loader = _loader(_config(mime_filter="IMAGE/"), hasher=hasher)
        payload = RawPayload(
            parts=(
                PayloadPart(mime_hint="", data=PNG_BYTES, filename="a.png"),
                PayloadPart(mime_hint="", data=b"%PDF-1.4", filename="doc.pdf"),
            )
        )

        files = await loader.prepare_files_to_upload(payload)

        assert [f.filename for f in files] == ["a.png"]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_deny_policy_rejects_batch_with_one_warning(self, hasher):
        ui = FakeUser()
        loader = _loader(_config(multiple_files="deny"), hasher=hasher, ui=ui)

        files = await loader.prepare_files_to_upload(_attachments("a.png", "b.png", "c.png"))

        assert files == []
        assert len(ui.warnings) == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_deny_policy_allows_single_file(self, hasher):
        loader = _loader(_config(multiple_files="deny"), hasher=hasher)
        assert len(await loader.prepare_files_to_upload(_attachments("a.png"))) == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_prompt_policy_respects_answer(self, hasher):
        declined = FakeUser(confirm=False)
        loader = _loader(_config(multiple_files="prompt"), hasher=hasher, ui=declined)
        assert await loader.prepare_files_to_upload(_attachments("a.png", "b.png")) == []
        assert declined.questions == ["Upload 2 files?"]

        accepted = _loader(_config(multiple_files="prompt"), hasher=hasher, ui=FakeUser())
        assert len(await accepted.prepare_files_to_upload(_attachments("a.png", "b.png"))) == 2

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_size_limit_decline_empties_batch(self, hasher):
        ui = FakeUser(confirm=False)
        loader = _loader(_config(size_limit=10), hasher=hasher, ui=ui)

        assert await loader.prepare_files_to_upload(_attachments("a.png")) == []
        assert "Upload anyway?" in ui.questions[0]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_size_limit_accept_keeps_batch(self, hasher):
        loader = _loader(_config(size_limit=10), hasher=hasher, ui=FakeUser(confirm=True))
        assert len(await loader.prepare_files_to_upload(_attachments("a.png"))) == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_zero_size_limit_never_prompts(self, hasher):
        ui = FakeUser(confirm=False)
        loader = _loader(_config(size_limit=0), hasher=hasher, ui=ui)

        assert len(await loader.prepare_files_to_upload(_attachments("a.png"))) == 1
        assert ui.questions == []


class TestUriList:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_local_files_outside_workspace_are_read(self, hasher, tmp_path, workspace):
        outside = tmp_path / "outside"
        outside.mkdir()
        (outside / "photo.png").write_bytes(PNG_BYTES)
        inside = workspace / "already.png"
        inside.write_bytes(PNG_BYTES)
        payload = RawPayload.from_uris(
            "# copied from a file manager",
            "",
            (outside / "photo.png").as_uri(),
            inside.as_uri(),
            (outside / "missing.png").as_uri(),
        )
        editor = FakeEditor(workspace, folders=[workspace])

        files = await _loader(_config(), hasher=hasher, editor=editor).prepare_files_to_upload(
            payload
        )

        assert [f.filename for f in files] == ["photo.png"]
        assert files[0].data == PNG_BYTES

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_workspace_files_used_when_policy_off(self, hasher, workspace):
        (workspace / "a.png").write_bytes(PNG_BYTES)
        editor = FakeEditor(workspace, folders=[workspace])
        loader = _loader(_config(ignore_workspace_files=False), hasher=hasher, editor=editor)

        files = await loader.prepare_files_to_upload(
            RawPayload.from_uris((workspace / "a.png").as_uri())
        )

        assert [f.filename for f in files] == ["a.png"]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_data_uri_is_decoded(self, hasher):
        uri = "data:image/png;base64," + base64.b64encode(PNG_BYTES).decode()
        loader = _loader(_config(file_naming_method="content-hash-short"), hasher=hasher)

        [file] = await loader.prepare_files_to_upload(RawPayload.from_uris(uri))

        assert file.data == PNG_BYTES
        assert file.mime == "image/png"
        assert file.name == hasher.hash(PNG_BYTES)[:8]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_remote_uris_are_fetched(self, hasher):
        fetcher = _mock_fetcher(
            {
                ("GET", "https://cdn.example.com/cat.png"): httpx.Response(
                    200, headers={"content-type": "image/png"}, content=PNG_BYTES
                )
            }
        )
        loader = _loader(_config(), hasher=hasher, fetcher=fetcher)

        files = await loader.prepare_files_to_upload(
            RawPayload.from_uris(
                "https://cdn.example.com/cat.png", "https://cdn.example.com/gone.png"
            )
        )

        assert [f.filename for f in files] == ["cat.png"]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_attachments_take_precedence_over_uri_list(self, hasher):
        payload = RawPayload(
            parts=(
                PayloadPart(mime_hint="text/uri-list", text="https://x/other.png"),
                PayloadPart(mime_hint="image/png", data=PNG_BYTES, filename="a.png"),
            )
        )
        files = await _loader(_config(), hasher=hasher).prepare_files_to_upload(payload)
        assert [f.filename for f in files] == ["a.png"]


class TestOriginalImage:
    GIF = b"GIF89a" + b"\x00" * 10
    HTML = '<p><img alt="x" src="data:abc"><img src="https://media.example.com/anim.gif"></p>'

    def _payload(self) -> RawPayload:
        return RawPayload(
            parts=(
                PayloadPart(mime_hint="image/png", data=PNG_BYTES, filename="image.png"),
                PayloadPart(mime_hint="text/html", text=self.HTML),
            )
        )

    @pytest.mark.unit
    def test_find_image_source_skips_non_http(self):
        assert find_image_source(self.HTML) == "https://media.example.com/anim.gif"
        assert find_image_source("<img src='/relative.png'>") is None
        html = '<img src="http://[bad/a.gif"><img src="https://ok/b.gif">'
        assert find_image_source(html) == "https://ok/b.gif"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_richer_original_replaces_batch(self, hasher):
        url = "https://media.example.com/anim.gif"
        fetcher = _mock_fetcher(
            {
                ("HEAD", url): httpx.Response(200, headers={"content-type": "image/gif"}),
                ("GET", url): httpx.Response(
                    200, headers={"content-type": "image/gif"}, content=self.GIF
                ),
            }
        )
        loader = _loader(_config(retrieve_original_image=True), hasher=hasher, fetcher=fetcher)

        [file] = await loader.prepare_files_to_upload(self._payload())

        assert file.filename == "anim.gif"
        assert file.mime == "image/gif"
        assert file.data == self.GIF

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_original_skipped_when_type_already_present(self, hasher):
        url = "https://media.example.com/anim.gif"
        fetcher = _mock_fetcher(
            {("HEAD", url): httpx.Response(200, headers={"content-type": "image/png"})}
        )
        loader = _loader(_config(retrieve_original_image=True), hasher=hasher, fetcher=fetcher)

        files = await loader.prepare_files_to_upload(self._payload())

        assert [f.mime for f in files] == ["image/png"]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_failed_retrieval_warns_and_keeps_files(self, hasher):
        ui = FakeUser()
        loader = _loader(
            _config(retrieve_original_image=True),
            hasher=hasher,
            ui=ui,
            fetcher=_mock_fetcher({}),
        )

        files = await loader.prepare_files_to_upload(self._payload())

        assert [f.mime for f in files] == ["image/png"]
        assert len(ui.warnings) == 1
        assert "animated content may be lost" in ui.warnings[0]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_malformed_content_length_still_retrieves_original(self, hasher):
        url = "https://media.example.com/anim.gif"
        fetcher = _mock_fetcher(
            {
                ("HEAD", url): httpx.Response(200, headers={"content-type": "image/gif"}),
                ("GET", url): httpx.Response(
                    200,
                    headers={"content-type": "image/gif", "content-length": "abc"},
                    content=self.GIF,
                ),
            }
        )
        ui = FakeUser()
        loader = _loader(
            _config(retrieve_original_image=True), hasher=hasher, ui=ui, fetcher=fetcher
        )

        [file] = await loader.prepare_files_to_upload(self._payload())

        assert file.filename == "anim.gif"
        assert ui.warnings == []

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_invalid_image_url_warns_and_keeps_files(self, hasher):
        ui = FakeUser()
        payload = RawPayload(
            parts=(
                PayloadPart(mime_hint="image/png", data=PNG_BYTES, filename="image.png"),
                PayloadPart(mime_hint="text/html", text='<img src="https://x/a\x01.gif">'),
            )
        )
        loader = _loader(
            _config(retrieve_original_image=True),
            hasher=hasher,
            ui=ui,
            fetcher=_mock_fetcher({}),
        )

        files = await loader.prepare_files_to_upload(payload)

        assert [f.mime for f in files] == ["image/png"]
        assert "animated content may be lost" in ui.warnings[0]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_original_outside_mime_filter_keeps_pasted_image(self, hasher):
        url = "https://media.example.com/anim.gif"
        fetcher = _mock_fetcher(
            {
                ("HEAD", url): httpx.Response(200, headers={"content-type": "image/gif"}),
                ("GET", url): httpx.Response(
                    200, headers={"content-type": "image/gif"}, content=self.GIF
                ),
            }
        )
        loader = _loader(
            _config(retrieve_original_image=True, mime_filter="^image/png$"),
            hasher=hasher,
            fetcher=fetcher,
        )

        files = await loader.prepare_files_to_upload(self._payload())

        assert [f.filename for f in files] == ["image.png"]
