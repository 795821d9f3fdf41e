from typing import Literal

from pydantic import BaseModel


class FileEntry(BaseModel):
    """A file or directory inside a tenant code directory.

    Attributes:
        name: Base name of the entry.
        type: Either ``file`` or ``directory``.
        path: POSIX path relative to the tenant code directory.
    """

    name: str
    type: Literal["file", "directory"]
    path: str
