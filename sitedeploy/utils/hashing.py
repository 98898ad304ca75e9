"""File walking and content hashing for artifact trees."""

import hashlib
from pathlib import Path
from typing import Iterator

_CHUNK_SIZE = 1024 * 1024


def content_md5(path: Path) -> str:
    """Return the hex MD5 of a file.

    MD5 matches the ETag S3 reports for single-part uploads, so local and
    remote hashes can be compared directly.
    """
    digest = hashlib.md5(usedforsecurity=False)
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def iter_artifact_files(root: Path) -> Iterator[tuple[str, Path]]:
    """Yield (relative posix path, absolute path) for every file under root."""
    for path in sorted(root.rglob("*")):
        if path.is_file():
            yield path.relative_to(root).as_posix(), path
