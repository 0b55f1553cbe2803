"""Reference snippets inserted in place of the pasted content."""

from __future__ import annotations

from dataclasses import dataclass

from paste_upload.config.schema import DEFAULT_IMAGE_SNIPPET, DEFAULT_SNIPPET
from paste_upload.core.templates import substitute
from paste_upload.core.types import ResourceFile


@dataclass(frozen=True, slots=True)
class SnippetTemplates:
    image: str = DEFAULT_IMAGE_SNIPPET
    default: str = DEFAULT_SNIPPET


def generate_snippet(
    file: ResourceFile, url: str, templates: SnippetTemplates | None = None
) -> str:
    """Render the image template for ``image/*`` files, the default otherwise."""
    templates = templates or SnippetTemplates()
    template = templates.image if file.mime.startswith("image/") else templates.default
    return substitute(
        template,
        {
            "url": url,
            "filename": file.filename,
            "filenameWithoutExtension": file.name,
            "extension": file.extension,
            "mimeType": file.mime,
        },
    )
