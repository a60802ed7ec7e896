# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Safe filesystem operations for rbverify.

Atomic writes go to a temporary file in the target's directory and are then
renamed into place. Rename on the same filesystem is atomic on POSIX, so a
crash mid-write leaves a stray temp file instead of a truncated trust store.
"""

import tempfile
from pathlib import Path


def atomic_write(target_path: Path, content: str, encoding: str = "utf-8") -> None:
    """
    Write content to a file atomically.

    Args:
        target_path: Where the final file should end up.
        content: The string content to write.
        encoding: Text encoding to use.

    Raises:
        OSError: If the write or rename fails.
    """
    target_path.parent.mkdir(parents=True, exist_ok=True)

    # delete=False: the file has to outlive close() so it can be renamed.
    temp_fd = tempfile.NamedTemporaryFile(
        mode="w",
        encoding=encoding,
        dir=str(target_path.parent),
        prefix=".rbverify_tmp_",
        suffix=".tmp",
        delete=False,
    )
    temp_path = Path(temp_fd.name)

    try:
        temp_fd.write(content)
        temp_fd.flush()
        temp_fd.close()
        temp_path.replace(target_path)
    except BaseException:
        temp_fd.close()
        if temp_path.exists():
            temp_path.unlink()
        raise


def is_within(target: Path, root: Path) -> bool:
    """True when `target` resolves to a location inside `root`."""
    resolved_target = target.resolve()
    resolved_root = root.resolve()
    return resolved_target == resolved_root or resolved_root in resolved_target.parents


def list_files(root: Path) -> list[str]:
    """
    Every regular file under `root`, as sorted POSIX paths relative to it.

    Directories are not listed on their own: an empty directory carries no
    bytes into an APK, so it cannot make two builds differ.
    """
    if not root.is_dir():
        return []
    return sorted(
        path.relative_to(root).as_posix()
        for path in root.rglob("*")
        if path.is_file()
    )
