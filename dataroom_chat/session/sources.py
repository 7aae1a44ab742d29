"""Resolution of cited file keys to display names and chunk bounds."""

from typing import Protocol

from pydantic import BaseModel

from dataroom_chat.models.messages import SourceLocation


def file_id_from_key(file_key: str) -> str:
    """Extract the file id from a source key like ``bucket/dir/<id>::<chunk>``."""
    return file_key.split("/")[-1].split("::")[0]


class SourceResolver(Protocol):
    """File metadata lookups provided by the host application."""

    def resolve_file_name(self, file_key: str) -> str: ...

    def resolve_bounding_box(self, file_key: str) -> SourceLocation | None: ...


class FileIndexResolver:
    """In-memory file index mapping file ids to display names.

    Unknown ids resolve to the id itself.
    """

    def __init__(
        self,
        names: dict[str, str] | None = None,
        bounds: dict[str, SourceLocation] | None = None,
    ) -> None:
        self._names: dict[str, str] = dict(names or {})
        self._bounds: dict[str, SourceLocation] = dict(bounds or {})

    def resolve_file_name(self, file_key: str) -> str:
        file_id = file_id_from_key(file_key)
        return self._names.get(file_id, file_id)

    def resolve_bounding_box(self, file_key: str) -> SourceLocation | None:
        return self._bounds.get(file_key)


class SourceActivation(BaseModel):
    """A user request to open a cited source.

    Attributes:
        file_key: Full source key as cited by the backend.
        file_id: File id extracted from the key.
        display_name: Resolved file name.
        chunk: Cited chunk text, if the activation came from a citation.
        location: Chunk bounds for highlighting, when known.
    """

    file_key: str
    file_id: str
    display_name: str
    chunk: str | None = None
    location: SourceLocation | None = None
