from datetime import datetime

import pytest

from paste_upload.core.templates import date_tokens, substitute
from paste_upload.core.types import ResourceFile
from paste_upload.snippet import SnippetTemplates, generate_snippet

pytestmark = pytest.mark.unit


def _file(name="shot", mime="image/png", extension="png"):
    return ResourceFile(name=name, mime=mime, extension=extension, data=b"x")


def test_image_files_use_image_template():
    assert generate_snippet(_file(), "https://cdn/shot.png") == "![shot](https://cdn/shot.png)"


def test_other_files_use_default_template():
    file = _file(name="report", mime="application/pdf", extension="pdf")
    assert generate_snippet(file, "https://cdn/report.pdf") == "[report.pdf](https://cdn/report.pdf)"


def test_every_token_is_substituted():
    templates = SnippetTemplates(
        image="${url}|${filename}|${filenameWithoutExtension}|${extension}|${mimeType}"
    )
    rendered = generate_snippet(_file(), "u", templates)
    assert rendered == "u|shot.png|shot|png|image/png"


def test_unknown_tokens_are_left_in_place():
    assert substitute("${url} ${nope}", {"url": "u"}) == "u ${nope}"


def test_date_tokens_are_zero_padded():
    tokens = date_tokens(datetime(2024, 3, 5), "img")
    assert tokens == {"year": "2024", "month": "03", "day": "05", "basename": "img"}
