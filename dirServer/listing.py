from __future__ import annotations

import datetime
import html
import logging
import os
import stat
from dataclasses import dataclass
from pathlib import Path
from string import Template
from typing import List, Mapping, Sequence, Tuple
from urllib.parse import quote

from .errors import FsError

LOG = logging.getLogger(__name__)

_PAGE_HEAD = Template(
    """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <title>$title</title>
    <link rel="icon" href="/favicon.svg" type="image/svg+xml">
</head>
<body>
<header>
    <form method="post" action="" enctype="multipart/form-data">
        <input type="file" name="upload">
        <input type="submit" value="upload"/>
    </form>
</header>
<article>
    <table>
        <tr>
            <td>file</td>
            <td>mod time</td>
            <td>size</td>
            <td>is dir</td>
        </tr>
        <tr><td><a href="$parent">..</a></td></tr>
"""
)

_PAGE_ROW = Template(
    """        <tr>
            <td><a href="$href">$name</a></td>
            <td>$mtime</td>
            <td>$size</td>
            <td>$is_dir</td>
        </tr>
"""
)

_PAGE_TAIL = """    </table>
</article>
</body>
</html>
"""


@dataclass(frozen=True)
class DirectoryEntry:
    name: str
    is_directory: bool
    size: int
    modified_time: float


@dataclass(frozen=True)
class ListingPage:
    title: str
    location_path: str
    entries: Tuple[DirectoryEntry, ...]


def escape_html(text: str) -> str:
    """Escape &, <, >, " and ' for use as HTML text or attribute value."""
    return html.escape(text, quote=True)


def escape_url(text: str) -> str:
    """Percent-encode a path (or path segment) for use as a link target."""
    return quote(text, safe="/", errors="surrogateescape")


def _fill(template: Template, text: Mapping[str, str], urls: Mapping[str, str]) -> str:
    # every slot goes through exactly one escaping discipline at insertion time
    slots = {key: escape_html(value) for key, value in text.items()}
    slots.update({key: escape_url(value) for key, value in urls.items()})
    return template.substitute(slots)


def format_mtime(timestamp: float) -> str:
    return datetime.datetime.fromtimestamp(timestamp).astimezone().strftime("%Y-%m-%d %H:%M:%S %z")


def _entry_from_dirent(dirent: os.DirEntry) -> DirectoryEntry:
    try:
        st = dirent.stat()
    except FileNotFoundError:
        # dangling symlink: describe the link itself
        st = dirent.stat(follow_symlinks=False)
    return DirectoryEntry(
        name=dirent.name,
        is_directory=stat.S_ISDIR(st.st_mode),
        size=st.st_size,
        modified_time=st.st_mtime,
    )


def read_directory(path: str | Path) -> List[DirectoryEntry]:
    """Immediate children of path in name order, unpartitioned."""
    entries: List[DirectoryEntry] = []
    try:
        with os.scandir(path) as it:
            for dirent in it:
                try:
                    entries.append(_entry_from_dirent(dirent))
                except FileNotFoundError:
                    LOG.debug("entry %s vanished while listing", dirent.name)
    except OSError as exc:
        raise FsError(f"cannot list directory: {exc.strerror or exc}") from exc
    entries.sort(key=lambda e: e.name)
    return entries


def split_dirs_and_files(entries: Sequence[DirectoryEntry]) -> Tuple[List[DirectoryEntry], List[DirectoryEntry]]:
    dirs = [e for e in entries if e.is_directory]
    files = [e for e in entries if not e.is_directory]
    return dirs, files


def sort_entries(entries: Sequence[DirectoryEntry]) -> List[DirectoryEntry]:
    """
    Directories first, then files; each group ordered by case-insensitive name.

    sorted() is stable, so names that compare equal keep their read order.
    """
    dirs, files = split_dirs_and_files(entries)
    dirs = sorted(dirs, key=lambda e: e.name.upper())
    files = sorted(files, key=lambda e: e.name.upper())
    return dirs + files


def list_directory(path: str | Path) -> List[DirectoryEntry]:
    return sort_entries(read_directory(path))


def build_page(location: str, entries: Sequence[DirectoryEntry]) -> ListingPage:
    return ListingPage(title=location or "/", location_path=location, entries=tuple(entries))


def render_listing(page: ListingPage) -> bytes:
    """Render the whole index page in memory so its length is known up front."""
    base = page.location_path
    parts = [_fill(_PAGE_HEAD, text={"title": page.title}, urls={"parent": base + "/.."})]
    for entry in page.entries:
        parts.append(
            _fill(
                _PAGE_ROW,
                text={
                    "name": entry.name,
                    "mtime": format_mtime(entry.modified_time),
                    "size": str(entry.size),
                    "is_dir": "true" if entry.is_directory else "false",
                },
                urls={"href": base + "/" + entry.name},
            )
        )
    parts.append(_PAGE_TAIL)
    return "".join(parts).encode("utf-8", errors="replace")


def render_directory(path: str | Path, location: str) -> bytes:
    return render_listing(build_page(location, list_directory(path)))
