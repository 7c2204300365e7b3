"""Uploadable files and input-media descriptions.

An :class:`InputFile` is one of three things:

* bytes to upload (``InputFile.from_bytes`` / ``InputFile.from_path``),
* a URL the Bot API downloads itself (``InputFile.from_url``),
* the id of a file already stored on the server (``InputFile.from_id``).

Only the first kind forces a ``multipart/form-data`` request; the other two
travel as plain strings.  Input-media models (used by ``sendMediaGroup`` and
``editMessageMedia``) embed files inside a JSON field, which is where the
``attach://<name>`` indirection comes in — see :mod:`sdk.envelope`.
"""

from __future__ import annotations

import dataclasses
import os
from typing import List, Literal, Optional, Union

from pydantic import BaseModel

from sdk.models import MessageEntity

ATTACH_PREFIX = "attach://"


@dataclasses.dataclass(frozen=True)
class InputFile:
    """A file argument of a Bot API method.

    Use the ``from_*`` constructors rather than building instances directly.
    """

    data: Optional[bytes] = dataclasses.field(default=None, repr=False)
    filename: Optional[str] = None
    url: Optional[str] = None
    file_id: Optional[str] = None
    attach_name: Optional[str] = None

    def __post_init__(self) -> None:
        sources = [self.data is not None, self.url is not None, self.file_id is not None]
        if sum(sources) != 1:
            raise ValueError("InputFile needs exactly one of data, url or file_id")
        reference = self.url or self.file_id
        if reference is not None and reference.startswith(ATTACH_PREFIX):
            raise ValueError(f"A file reference cannot start with {ATTACH_PREFIX!r}")
        if self.attach_name is not None and not self.attach_name.replace("_", "").isalnum():
            raise ValueError(f"Invalid attach name: {self.attach_name!r}")

    @classmethod
    def from_bytes(cls, filename: str, data: bytes, attach_name: Optional[str] = None) -> "InputFile":
        """Upload *data* under *filename*."""
        return cls(data=bytes(data), filename=filename, attach_name=attach_name)

    @classmethod
    def from_path(cls, path: Union[str, os.PathLike], attach_name: Optional[str] = None) -> "InputFile":
        """Read *path* from disk and upload it under its base name."""
        with open(path, "rb") as fh:
            data = fh.read()
        return cls(data=data, filename=os.path.basename(os.fspath(path)), attach_name=attach_name)

    @classmethod
    def from_url(cls, url: str) -> "InputFile":
        """Let the Bot API fetch the file from *url*."""
        return cls(url=url)

    @classmethod
    def from_id(cls, file_id: str) -> "InputFile":
        """Reuse a file already stored on the server."""
        return cls(file_id=file_id)

    @property
    def is_upload(self) -> bool:
        """Whether the file carries bytes that must go in a multipart body."""
        return self.data is not None

    @property
    def reference(self) -> Optional[str]:
        """The URL or file id, for files that are not uploads."""
        return self.url if self.url is not None else self.file_id


class InputMedia(BaseModel):
    """Common fields of every input-media description."""

    type: str
    media: Union[InputFile, str]
    caption: Optional[str] = None
    parse_mode: Optional[str] = None
    caption_entities: Optional[List[MessageEntity]] = None

    model_config = {"populate_by_name": True, "arbitrary_types_allowed": True}


class InputMediaPhoto(InputMedia):
    """A photo to be sent in an album or swapped into an existing message."""

    type: Literal["photo"] = "photo"
    has_spoiler: Optional[bool] = None


class InputMediaVideo(InputMedia):
    type: Literal["video"] = "video"
    thumbnail: Optional[Union[InputFile, str]] = None
    width: Optional[int] = None
    height: Optional[int] = None
    duration: Optional[int] = None
    supports_streaming: Optional[bool] = None
    has_spoiler: Optional[bool] = None


class InputMediaAnimation(InputMedia):
    type: Literal["animation"] = "animation"
    thumbnail: Optional[Union[InputFile, str]] = None
    width: Optional[int] = None
    height: Optional[int] = None
    duration: Optional[int] = None
    has_spoiler: Optional[bool] = None


class InputMediaAudio(InputMedia):
    type: Literal["audio"] = "audio"
    thumbnail: Optional[Union[InputFile, str]] = None
    duration: Optional[int] = None
    performer: Optional[str] = None
    title: Optional[str] = None


class InputMediaDocument(InputMedia):
    type: Literal["document"] = "document"
    thumbnail: Optional[Union[InputFile, str]] = None
    disable_content_type_detection: Optional[bool] = None
