"""One-shot upgrades for todo files written by older versions.

Every step is idempotent: running the migration again changes nothing.
"""

import logging

import todo_filenames as filenames
import todo_store

logger = logging.getLogger(__name__)


def _read_all():
    """Yield (base, meta, content) for every readable todo, in filename order."""
    for base in todo_store.list_bases():
        try:
            meta, content = todo_store.read_pair(base)
            todo_store.check_meta(meta)
        except (OSError, ValueError) as e:
            logger.error("Error reading %s: %s", base, e)
            continue
        yield base, meta, content


def backfill_titles():
    """Give legacy todos without a title one taken from their first heading."""
    migrated = 0
    for base, meta, content in _read_all():
        if not todo_store.needs_title_backfill(meta):
            continue
        try:
            todo_store.backfill_title(base, meta, content)
        except OSError as e:
            logger.error("Error backfilling title for %s: %s", base, e)
            continue
        migrated += 1
    return migrated


def migrate_existing_todos():
    """Add a slug to every todo whose metadata lacks one.

    Slugs are derived from the title and made unique against every slug
    already present or assigned earlier in the pass.
    """
    records = list(_read_all())
    logger.info("Found %d meta files for migration", len(records))
    slugs = {meta["slug"] for _, meta, _ in records if meta.get("slug")}

    migrated = 0
    for base, meta, _ in records:
        if meta.get("slug"):
            continue
        base_slug = filenames.generate_slug_from_title(meta.get("title", ""))
        if not base_slug:
            base_slug = f"todo-{str(meta.get('id', base))[:8]}"
        slug = todo_store.unique_slug(base_slug, slugs)
        slugs.add(slug)

        meta["slug"] = slug
        try:
            todo_store.write_meta(base, meta)
        except OSError as e:
            logger.error("Error migrating %s: %s", base, e)
            continue
        migrated += 1
        logger.info("Migrated %s: %r -> slug %r", base, meta.get("title"), slug)

    logger.info("Slug migration completed, %d files migrated", migrated)
    return migrated


def fix_duplicate_slugs():
    """Re-slug every todo sharing a slug with an earlier one (by filename)."""
    by_slug = {}
    for base, meta, _ in _read_all():
        if meta.get("slug"):
            by_slug.setdefault(meta["slug"], []).append((base, meta))

    taken = set(by_slug)
    fixed = 0
    for slug, entries in by_slug.items():
        if len(entries) < 2:
            continue
        logger.info("Found duplicate slug %r in %d files", slug, len(entries))
        for base, meta in entries[1:]:
            new_slug = todo_store.unique_slug(slug, taken)
            taken.add(new_slug)
            meta["slug"] = new_slug
            try:
                todo_store.write_meta(base, meta)
            except OSError as e:
                logger.error("Error fixing %s: %s", base, e)
                continue
            fixed += 1
            logger.info("Fixed duplicate: %s -> slug %r", base, new_slug)
    return fixed


def normalize_orders():
    """Renumber every section to 1..N, closing gaps and duplicates."""
    todos = todo_store.list_todos()
    sections = set(todo_store.SECTIONS) | {t["meta"]["section"] for t in todos}
    return sum(todo_store.renumber_section(section, todos) for section in sorted(sections))


def run_migration():
    """Run every migration step in order and return what each one changed."""
    logger.info("Starting todo migration in %s", todo_store.TODOS_DIR)
    summary = {
        "titles": backfill_titles(),
        "slugs": migrate_existing_todos(),
        "duplicates": fix_duplicate_slugs(),
        "reordered": normalize_orders(),
    }
    logger.info("Migration completed: %s", summary)
    return summary
