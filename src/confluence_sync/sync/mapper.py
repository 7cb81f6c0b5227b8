"""Ancestor-driven path mapper for the pull sync.

Turns a flat batch of pages, each carrying its ancestor chain, into local
folder and file paths under the sync folder.

Mapping rules:

1. **Parents** -- any page id that appears in some page's ancestor chain
   is a parent.  Parents get their own folder: ``<base>/<Title>/<Title>.md``.
2. **Leaves** -- everything else lands flat: ``<base>/<Title>.md``.
3. **Base folder** -- the sync folder plus one segment per ancestor,
   skipping configured roots (roots bound the sync, they are not shown).
4. **Collisions** -- when two pages resolve to the same file, the later
   one (shallower pages first, then by page id) gets `` (<page id>)``
   appended to its title segment, and its descendants follow it.  Files
   recorded for pages outside the batch count as taken, so an
   incremental pass never lands on a path another page already owns.

Paths are ``/``-separated and relative to the vault root.
"""

from __future__ import annotations

import logging
import posixpath
from collections.abc import Iterable, Mapping

from ..converters.common import sanitize_filename
from .models import Ancestor, Page, PathInfo

logger = logging.getLogger(__name__)


def _id_order(page_id: str) -> tuple[int, str]:
    # Numeric ids compare numerically when they are compared by length first
    return (len(page_id), page_id)


def join_path(*segments: str) -> str:
    return "/".join(s.strip("/") for s in segments if s and s.strip("/"))


def _file_stem(path: str) -> str:
    return posixpath.splitext(posixpath.basename(path))[0]


class PathMapper:
    """Compute where each page of a batch is written.

    Args:
        root_ids: Configured root page ids.
        sync_folder: Vault-relative folder everything is placed under.
    """

    def __init__(self, root_ids: Iterable[str], sync_folder: str) -> None:
        self._root_ids = frozenset(root_ids)
        self._sync_folder = sync_folder.strip().strip("/")

    def build_paths(
        self,
        pages: Iterable[Page],
        recorded: Mapping[str, str] | None = None,
    ) -> dict[str, PathInfo]:
        """Return a ``PathInfo`` for every page, keyed by page id.

        Args:
            pages: The complete batch for this pass.  Parent detection only
                sees ancestors referenced by pages in this batch.
            recorded: Page id to file path for pages synced earlier.  Paths
                of pages outside the batch are reserved for their owners,
                and an ancestor outside the batch keeps the folder name its
                file was written under.
        """
        pages = list(pages)
        recorded = dict(recorded or {})
        batch_ids = {page.id for page in pages}
        parent_ids = {
            ancestor.id for page in pages for ancestor in page.ancestors
        }

        segments: dict[str, str] = {}
        taken: dict[str, str] = {
            path.casefold(): page_id
            for page_id, path in recorded.items()
            if page_id not in batch_ids
        }
        paths: dict[str, PathInfo] = {}

        def ancestor_segment(ancestor: Ancestor) -> str:
            if ancestor.id in segments:
                return segments[ancestor.id]
            if ancestor.id in recorded and ancestor.id not in batch_ids:
                return _file_stem(recorded[ancestor.id])
            return sanitize_filename(ancestor.title)

        ordered = sorted(
            pages, key=lambda p: (len(p.ancestors), _id_order(p.id))
        )
        for page in ordered:
            base = join_path(
                self._sync_folder,
                *(
                    ancestor_segment(a)
                    for a in page.ancestors
                    if a.id not in self._root_ids
                ),
            )
            is_parent = page.id in parent_ids
            segment = sanitize_filename(page.title)
            info = self._place(page, base, segment, is_parent)

            owner = taken.get(info.file_path.casefold())
            if owner is not None and owner != page.id:
                segment = f"{segment} ({page.id})"
                logger.warning(
                    "Page %s ('%s') collides with page %s at %s, "
                    "writing it as '%s'",
                    page.id,
                    page.title,
                    owner,
                    info.file_path,
                    segment,
                )
                info = self._place(page, base, segment, is_parent)

            taken[info.file_path.casefold()] = page.id
            segments[page.id] = segment
            paths[page.id] = info

        return paths

    @staticmethod
    def _place(
        page: Page, base: str, segment: str, is_parent: bool
    ) -> PathInfo:
        folder = join_path(base, segment) if is_parent else base
        return PathInfo(
            page_id=page.id,
            title=page.title,
            folder_path=folder,
            file_path=join_path(folder, f"{segment}.md"),
        )
