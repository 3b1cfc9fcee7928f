"""Write fetched work items to notes."""

from collections.abc import Callable, Collection

from loguru import logger

from workitem_sync.models.work_item import PullStats, RemoteItem
from workitem_sync.protocols import ContentCodecProtocol, DocumentStoreProtocol


def pull_work_items(
    items: list[RemoteItem],
    documents: DocumentStoreProtocol,
    codec: ContentCodecProtocol,
    *,
    skip_ids: Collection[int] = (),
    force: bool = False,
    on_pulled: Callable[[int, str], None] | None = None,
) -> PullStats:
    """Render every item as a note and write the ones whose content changed.

    Notes of ``skip_ids`` (local edits not yet pushed) are left alone unless
    ``force`` is set.

    Args:
        items: Work items with relations, as fetched.
        documents: Where the notes live.
        codec: Renders items and compares notes.
        skip_ids: Work items whose notes must not be overwritten.
        force: Overwrite notes even for ``skip_ids``.
        on_pulled: Called with (id, text) for every note that now matches the
            remote item, written or not.

    Returns:
        PullStats with written/unchanged/skipped counts.
    """
    titles = {item.id: item.get("System.Title") or "Untitled" for item in items}
    written = 0
    unchanged = 0
    skipped = 0

    for item in items:
        if item.id in skip_ids and not force:
            logger.info("Skipping work item {}: local changes not pushed", item.id)
            skipped += 1
            continue

        ref = documents.find(item.id) or documents.resource_ref(item.id, titles[item.id])
        text = codec.render_note(item, related=titles)
        old_text = None
        if documents.exists(ref):
            try:
                old_text = documents.read(ref)
            except (UnicodeDecodeError, OSError) as e:
                logger.warning("Skipping work item {}: cannot read {!r}: {}", item.id, ref, e)
                skipped += 1
                continue

        if old_text is not None and codec.normalize(old_text) == codec.normalize(text):
            unchanged += 1
            text = old_text
        else:
            documents.write(ref, text)
            written += 1

        if on_pulled is not None:
            on_pulled(item.id, text)

    logger.info("Pulled {} work items: {} written, {} unchanged, {} skipped",
                len(items), written, unchanged, skipped)
    return PullStats(notes_written=written, notes_unchanged=unchanged, notes_skipped=skipped)
