"""File-backed todo store.

Each todo is two sibling files in TODOS_DIR sharing a base name:

    <base>.meta.json   pretty-printed metadata (id, title, section, order, ...)
    <base>.md          raw markdown content

The base name is either the todo id (legacy layout) or derived from the
title. The id inside the metadata is what identifies a todo; the base name
may change whenever the title does.
"""

import json
import logging
import os
import uuid
from datetime import datetime, timezone
from pathlib import Path

import todo_filenames as filenames

logger = logging.getLogger(__name__)

TODOS_DIR = Path(os.environ.get("MDTODO_TODOS_DIR") or Path(__file__).parent / "todos")

META_SUFFIX = ".meta.json"
CONTENT_SUFFIX = ".md"

# Display order of the three fixed sections
SECTIONS = {
    "today": {"label": "Today", "order": 0},
    "week": {"label": "This Week", "order": 1},
    "longterm": {"label": "Long Term", "order": 2},
}
PRIORITIES = ["high", "medium", "low"]
DEFAULT_SECTION = "today"
DEFAULT_PRIORITY = "medium"

# Metadata fields a caller may change through update_todo()
UPDATABLE_FIELDS = ("title", "content", "completed", "priority", "tags", "section", "dueDate")

# id -> base filename for each todos directory, rebuilt on every listing
_base_index = {}


def now_iso():
    """Return the current UTC time as an ISO string with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def ensure_todos_dir():
    TODOS_DIR.mkdir(parents=True, exist_ok=True)


def meta_path(base):
    return TODOS_DIR / f"{base}{META_SUFFIX}"


def content_path(base):
    return TODOS_DIR / f"{base}{CONTENT_SUFFIX}"


def _index():
    return _base_index.setdefault(TODOS_DIR, {})


def list_bases():
    """Return the base names of every metadata file, sorted by name."""
    ensure_todos_dir()
    return sorted(
        p.name[:-len(META_SUFFIX)]
        for p in TODOS_DIR.iterdir()
        if p.name.endswith(META_SUFFIX) and p.is_file()
    )


def _existing_bases():
    """Lowercased base names of every todo file, including orphaned halves."""
    bases = set()
    for p in TODOS_DIR.iterdir():
        if p.name.endswith(META_SUFFIX):
            bases.add(p.name[:-len(META_SUFFIX)].lower())
        elif p.name.endswith(CONTENT_SUFFIX):
            bases.add(p.name[:-len(CONTENT_SUFFIX)].lower())
    return bases


# ---------------------------------------------------------------------------
# Low-level file I/O
# ---------------------------------------------------------------------------

def _write_text(path, text):
    """Write a file through a temp file and rename so readers never see half of it."""
    tmp = path.with_name(f".{path.name}.tmp")
    try:
        tmp.write_text(text, encoding="utf-8")
        os.replace(tmp, path)
    except OSError:
        tmp.unlink(missing_ok=True)
        raise


def _dump_meta(meta):
    return json.dumps(meta, indent=2, ensure_ascii=False)


def read_pair(base):
    """Read the metadata and content of one todo.

    A missing content file means empty content. Raises OSError or
    ValueError (bad JSON) for unreadable metadata.
    """
    meta = json.loads(meta_path(base).read_text(encoding="utf-8"))
    if not isinstance(meta, dict):
        raise ValueError(f"{base}{META_SUFFIX} does not contain an object")
    try:
        content = content_path(base).read_text(encoding="utf-8")
    except FileNotFoundError:
        content = ""
    return meta, content


def write_meta(base, meta):
    _write_text(meta_path(base), _dump_meta(meta))


def _write_pair(base, meta, content, new=False):
    """Write both files of a todo as one operation.

    Content goes first so a listing (which keys on metadata files) never
    picks up a new todo without its body. When writing a new pair fails
    halfway, the written half is removed before the error propagates.
    """
    _write_text(content_path(base), content)
    try:
        write_meta(base, meta)
    except OSError:
        if new:
            content_path(base).unlink(missing_ok=True)
        raise


def _delete_pair(base):
    meta_path(base).unlink()
    content_path(base).unlink(missing_ok=True)


def _read_meta_id(base):
    try:
        return json.loads(meta_path(base).read_text(encoding="utf-8")).get("id")
    except (OSError, ValueError, AttributeError):
        return None


# ---------------------------------------------------------------------------
# Legacy title backfill
# ---------------------------------------------------------------------------

def extract_title_from_markdown(content):
    """Return the text of the first '# ' heading, or 'Untitled'."""
    for line in content.split("\n"):
        if line.startswith("# "):
            return line[2:].strip() or "Untitled"
    return "Untitled"


def remove_title_from_markdown(content):
    """Drop a leading '# ' heading line and the blank lines after it."""
    lines = content.split("\n")
    if lines and lines[0].startswith("# "):
        return "\n".join(lines[1:]).lstrip("\n")
    return content


def needs_title_backfill(meta):
    return "title" not in meta


def backfill_title(base, meta, content):
    """Move the heading of a legacy todo into its metadata and rewrite both files."""
    meta = dict(meta)
    meta["title"] = extract_title_from_markdown(content)
    meta["updatedAt"] = now_iso()
    content = remove_title_from_markdown(content)
    _write_pair(base, meta, content)
    logger.info("Backfilled title for %s: %r", base, meta["title"])
    return meta, content


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _with_defaults(meta):
    meta.setdefault("completed", False)
    meta.setdefault("priority", DEFAULT_PRIORITY)
    meta.setdefault("tags", [])
    meta.setdefault("section", DEFAULT_SECTION)
    meta.setdefault("order", 0)
    return meta


def sort_key(todo):
    meta = todo["meta"]
    section = SECTIONS.get(meta.get("section"), {"order": len(SECTIONS)})
    return (section["order"], meta.get("order", 0))


def normalize_tags(tags):
    """Strip tags and drop empty and duplicate ones, keeping first-seen order."""
    result = []
    for tag in tags or []:
        tag = str(tag).strip()
        if tag and tag not in result:
            result.append(tag)
    return result


def check_section(section):
    if section not in SECTIONS:
        raise ValueError(f"Invalid section: {section}")


def check_meta(meta):
    """Reject metadata whose fields have the wrong JSON types."""
    if "id" in meta and not isinstance(meta["id"], str):
        raise ValueError(f"id must be a string, got {meta['id']!r}")
    if "section" in meta and not isinstance(meta["section"], str):
        raise ValueError(f"section must be a string, got {meta['section']!r}")
    order = meta.get("order")
    if "order" in meta and (not isinstance(order, int) or isinstance(order, bool)):
        raise ValueError(f"order must be an integer, got {order!r}")
    if "tags" in meta and not isinstance(meta["tags"], list):
        raise ValueError(f"tags must be a list, got {meta['tags']!r}")


def section_todos(todos, section):
    """Todos of one section in display order."""
    return sorted((t for t in todos if t["meta"].get("section") == section), key=sort_key)


def _max_order(todos, section):
    return max((t["meta"].get("order", 0) for t in todos if t["meta"].get("section") == section), default=0)


def unique_slug(base, taken):
    """Return base, or base-2, base-3, ... whichever is not in taken."""
    slug, counter = base, 2
    while slug in taken:
        slug = f"{base}-{counter}"
        counter += 1
    return slug


def _slug_for(title, todo_id, todos):
    taken = {t["meta"].get("slug") for t in todos if t["meta"]["id"] != todo_id}
    base = filenames.generate_slug_from_title(title) or f"todo-{todo_id[:8]}"
    return unique_slug(base, taken)


def _unique_base(title, current=None):
    """Pick a base filename for a title that no other todo uses.

    Tries the derived name, then numeric suffixes, then a timestamp name.
    The todo's own current base (if any) does not count as a collision.
    """
    existing = _existing_bases()
    if current:
        existing.discard(current.lower())

    base = filenames.generate_filename_from_title(title)
    if base:
        for candidate in filenames.unique_filename_candidates(base):
            if candidate.lower() not in existing:
                return candidate
        logger.warning("All filename candidates for %r are taken, using a timestamp", title)

    fallback = filenames.generate_fallback_filename()
    candidate, counter = fallback, 2
    while candidate.lower() in existing:
        candidate = f"{fallback}-{counter}"
        counter += 1
    return candidate


def _find_base(todo_id):
    """Locate the base filename of a todo, or None if it does not exist."""
    if not todo_id or filenames.INVALID_FILENAME_CHARS.search(todo_id) or todo_id.startswith("."):
        return None
    # Index before the legacy <id> layout: it holds the pair that won when
    # an id is stored twice
    if not _index():
        list_todos()
    for base in (_index().get(todo_id), todo_id):
        if base and _read_meta_id(base) == todo_id:
            return base
    list_todos()
    return _index().get(todo_id)


def _renumber(todos, section, always=()):
    """Give todos orders 1..N in the given section, writing only what changed."""
    index = _index()
    changed = 0
    for position, todo in enumerate(todos, start=1):
        meta = todo["meta"]
        if meta.get("order") == position and meta.get("section") == section and meta["id"] not in always:
            continue
        meta["order"] = position
        meta["section"] = section
        write_meta(index[meta["id"]], meta)
        changed += 1
    return changed


def renumber_section(section, todos=None):
    """Close any gaps in a section's order values. Returns how many todos changed."""
    todos = list_todos() if todos is None else todos
    return _renumber(section_todos(todos, section), section)


# ---------------------------------------------------------------------------
# Public operations
# ---------------------------------------------------------------------------

def list_todos():
    """Load every todo, sorted by section and order.

    Unreadable files are logged and skipped. Legacy metadata without a
    title is upgraded in place. If two file pairs carry the same id (an
    interrupted rename), the most recently updated one wins.
    """
    by_id = {}
    index = {}
    for base in list_bases():
        try:
            meta, content = read_pair(base)
            if needs_title_backfill(meta):
                meta, content = backfill_title(base, meta, content)
            check_meta(meta)
        except (OSError, ValueError) as e:
            logger.error("Error reading todo %s: %s", base, e)
            continue

        todo_id = meta.get("id")
        if not todo_id:
            logger.warning("Skipping %s: metadata has no id", base)
            continue

        existing = by_id.get(todo_id)
        if existing is not None:
            logger.warning("Todo %s is stored as both %s and %s", todo_id, index[todo_id], base)
            if (meta.get("updatedAt") or "") <= (existing["meta"].get("updatedAt") or ""):
                continue

        by_id[todo_id] = {"meta": _with_defaults(meta), "content": content}
        index[todo_id] = base

    _base_index[TODOS_DIR] = index
    return sorted(by_id.values(), key=sort_key)


def get_todo(todo_id):
    """Get a todo by id, or None."""
    base = _find_base(todo_id)
    if base is None:
        return None
    try:
        meta, content = read_pair(base)
        if needs_title_backfill(meta):
            meta, content = backfill_title(base, meta, content)
        check_meta(meta)
    except (OSError, ValueError) as e:
        logger.error("Error reading todo %s: %s", base, e)
        return None
    return {"meta": _with_defaults(meta), "content": content}


def get_todo_by_slug(slug):
    for todo in list_todos():
        if todo["meta"].get("slug") == slug:
            return todo
    return None


def create_todo(title, content="", priority=None, tags=None, section=None, due_date=None):
    """Create a todo at the end of its section and return it."""
    section = section or DEFAULT_SECTION
    check_section(section)
    title = title.strip()
    content = content or ""

    todos = list_todos()
    todo_id = str(uuid.uuid4())
    now = now_iso()
    meta = {
        "id": todo_id,
        "title": title,
        "slug": _slug_for(title, todo_id, todos),
        "createdAt": now,
        "updatedAt": now,
        "completed": False,
        "priority": priority or DEFAULT_PRIORITY,
        "tags": normalize_tags(tags),
        "order": _max_order(todos, section) + 1,
        "section": section,
    }
    if due_date:
        meta["dueDate"] = due_date

    base = _unique_base(title)
    _write_pair(base, meta, content, new=True)
    _index()[todo_id] = base
    logger.info("Created todo %s as %s", todo_id, base)
    return {"meta": meta, "content": content}


def update_todo(todo_id, fields):
    """Merge fields into a todo and return it, or None if it does not exist.

    A title change renames the backing files (new pair written first, old
    pair deleted after). A section change moves the todo to the end of
    the new section.
    """
    base = _find_base(todo_id)
    if base is None:
        return None
    meta, content = read_pair(base)
    _with_defaults(meta)

    changes = {k: v for k, v in fields.items() if k in UPDATABLE_FIELDS}
    new_content = changes.pop("content", None)
    old_section = meta["section"]

    updated = dict(meta, **changes)
    if "title" in changes:
        updated["title"] = changes["title"].strip()
    if "tags" in changes:
        updated["tags"] = normalize_tags(changes["tags"])
    if "dueDate" in changes and not changes["dueDate"]:
        updated.pop("dueDate", None)
    updated["updatedAt"] = now_iso()

    section_changed = updated["section"] != old_section
    title_changed = "title" in changes and updated["title"] != meta.get("title")
    if section_changed:
        check_section(updated["section"])

    todos = list_todos() if section_changed or title_changed else []
    if section_changed:
        updated["order"] = _max_order(todos, updated["section"]) + 1

    new_base = base
    if title_changed:
        updated["slug"] = _slug_for(updated["title"], todo_id, todos)
        new_base = _unique_base(updated["title"], current=base)
        # Same name apart from case: renaming would clobber itself on
        # case-insensitive filesystems
        if new_base.lower() == base.lower():
            new_base = base

    final_content = content if new_content is None else new_content
    if new_base != base:
        _write_pair(new_base, updated, final_content, new=True)
        _index()[todo_id] = new_base
        _delete_pair(base)
        logger.info("Renamed todo %s: %s -> %s", todo_id, base, new_base)
    elif new_content is not None:
        _write_pair(base, updated, final_content)
    else:
        write_meta(base, updated)

    if section_changed:
        renumber_section(old_section)

    return {"meta": updated, "content": final_content}


def delete_todo(todo_id):
    """Delete a todo's files. Returns False if the todo does not exist."""
    base = _find_base(todo_id)
    if base is None:
        return False
    meta, _ = read_pair(base)
    _delete_pair(base)
    _index().pop(todo_id, None)
    logger.info("Deleted todo %s (%s)", todo_id, base)
    renumber_section(meta.get("section", DEFAULT_SECTION))
    return True


def reorder_todos(source_index, destination_index, source_section, destination_section):
    """Move the todo at a position of one section to a position of another.

    Indices are zero-based within each section's display order. The
    destination index is clamped to the section length; an out-of-range
    source index leaves everything as it is. Returns the full todo list.
    """
    check_section(source_section)
    check_section(destination_section)
    todos = list_todos()
    source = section_todos(todos, source_section)
    if not 0 <= source_index < len(source):
        logger.warning("Reorder ignored: no todo at %s[%s]", source_section, source_index)
        return todos

    moved = source.pop(source_index)
    always = ()
    if source_section == destination_section:
        destination = source
    else:
        destination = section_todos(todos, destination_section)
        moved["meta"]["section"] = destination_section
        moved["meta"]["updatedAt"] = now_iso()
        always = (moved["meta"]["id"],)

    destination_index = max(0, min(destination_index, len(destination)))
    destination.insert(destination_index, moved)

    if destination is not source:
        _renumber(source, source_section)
    _renumber(destination, destination_section, always)
    return list_todos()


def move_todo(source_id, destination_id, section):
    """Move a todo so it sits right before another one in a section.

    With no destination (or an unknown one) the todo goes to the end of
    the section. Returns the full todo list, or None for an unknown source.
    """
    check_section(section)
    todos = list_todos()
    moved = next((t for t in todos if t["meta"]["id"] == source_id), None)
    if moved is None:
        return None
    if destination_id == source_id:
        return todos

    old_section = moved["meta"]["section"]
    target = [t for t in section_todos(todos, section) if t is not moved]
    position = next(
        (i for i, t in enumerate(target) if t["meta"]["id"] == destination_id),
        len(target),
    )
    target.insert(position, moved)

    always = ()
    if old_section != section:
        remaining = [t for t in section_todos(todos, old_section) if t is not moved]
        moved["meta"]["section"] = section
        moved["meta"]["updatedAt"] = now_iso()
        always = (source_id,)
        _renumber(remaining, old_section)
    _renumber(target, section, always)
    return list_todos()
