#!/usr/bin/env python3
"""mdtodo - Markdown-file todo manager with a sectioned board API."""

import json
import logging
import os
import sys
from datetime import date
from pathlib import Path

from flask import Flask, jsonify, request

import todo_markup as markup
import todo_migrate as migrate
import todo_search as search
import todo_store

app = Flask(__name__)

logger = logging.getLogger(__name__)

DATA_DIR = Path(os.environ.get("MDTODO_DATA_DIR") or Path(__file__).parent / "data")
SETTINGS_FILE = DATA_DIR / "settings.json"
LOG_FILE_NAME = "mdtodo.log"
DEFAULT_PORT = 5050

THEMES = ["light", "dark"]


def setup_logging(log_dir=None, console_level=logging.INFO, file_level=logging.DEBUG):
    """Configure console and file logging. Call once, before serving."""
    log_dir = Path(log_dir or DATA_DIR)
    log_dir.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for handler in list(root.handlers):
        root.removeHandler(handler)

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(fmt)
    root.addHandler(console)

    logfile = logging.FileHandler(str(log_dir / LOG_FILE_NAME), encoding="utf-8")
    logfile.setLevel(file_level)
    logfile.setFormatter(fmt)
    root.addHandler(logfile)

    logging.captureWarnings(True)


def load_settings():
    """Load settings from JSON file."""
    if SETTINGS_FILE.exists():
        return json.loads(SETTINGS_FILE.read_text())
    return {}


def save_settings(settings):
    """Save settings to JSON file."""
    SETTINGS_FILE.parent.mkdir(parents=True, exist_ok=True)
    SETTINGS_FILE.write_text(json.dumps(settings, indent=2))


def _is_date(value):
    try:
        date.fromisoformat(value)
    except (TypeError, ValueError):
        return False
    return True


def validate_todo_payload(data, creating=False):
    """Check a create/update body. Returns an error message or None."""
    if not isinstance(data, dict):
        return "JSON object required"

    if creating or "title" in data:
        title = data.get("title")
        if not isinstance(title, str) or not title.strip():
            return "Title is required"
    if "content" in data and data["content"] is not None and not isinstance(data["content"], str):
        return "Content must be a string"
    # Both may be omitted (null) on create to get the defaults
    for key, allowed in (("priority", todo_store.PRIORITIES), ("section", list(todo_store.SECTIONS))):
        if key in data and data[key] not in allowed and not (creating and data[key] is None):
            return f"Invalid {key}"
    if data.get("tags") is not None:
        tags = data["tags"]
        if not isinstance(tags, list) or not all(isinstance(t, str) for t in tags):
            return "Tags must be a list of strings"
    if "completed" in data and not isinstance(data["completed"], bool):
        return "Completed must be true or false"
    if data.get("dueDate") and not _is_date(data["dueDate"]):
        return "dueDate must be YYYY-MM-DD"
    return None


def _is_section(value):
    return isinstance(value, str) and value in todo_store.SECTIONS


def _split_param(name):
    value = request.args.get(name, "")
    return [part.strip() for part in value.split(",") if part.strip()]


@app.errorhandler(OSError)
def handle_storage_error(error):
    """Report disk failures as a 500 without taking the server down."""
    logger.exception("Storage error: %s", error)
    return jsonify({"error": "Storage error"}), 500


@app.route("/api/sections")
def get_sections():
    """Get section metadata in display order."""
    return jsonify(todo_store.SECTIONS)


@app.route("/api/todos")
def get_todos():
    """Get all todos, optionally searched and filtered."""
    todos = todo_store.list_todos()
    show_completed = request.args.get("completed", "true").lower() != "false"
    result = search.search_todos(
        todos,
        query=request.args.get("q", ""),
        tags=_split_param("tags"),
        priorities=_split_param("priority"),
        show_completed=show_completed,
    )
    return jsonify(result)


@app.route("/api/todos", methods=["POST"])
def add_todo():
    """Create a todo at the end of a section."""
    data = request.get_json(silent=True)
    error = validate_todo_payload(data, creating=True)
    if error:
        return jsonify({"error": error}), 400

    todo = todo_store.create_todo(
        title=data["title"],
        content=data.get("content") or "",
        priority=data.get("priority"),
        tags=data.get("tags"),
        section=data.get("section"),
        due_date=data.get("dueDate"),
    )
    return jsonify(todo), 201


@app.route("/api/todos/reorder", methods=["PATCH", "POST"])
def reorder_todos():
    """Reorder todos by position (sourceIndex...) or by neighbour (sourceId...)."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"error": "JSON object required"}), 400

    if "sourceId" in data:
        section = data.get("section")
        if not data["sourceId"] or not _is_section(section):
            return jsonify({"error": "sourceId and a valid section required"}), 400
        todos = todo_store.move_todo(data["sourceId"], data.get("destinationId"), section)
        if todos is None:
            return jsonify({"error": "Todo not found"}), 404
        return jsonify(todos)

    source_section = data.get("sourceSection")
    destination_section = data.get("destinationSection", source_section)
    if not (_is_section(source_section) and _is_section(destination_section)):
        return jsonify({"error": "Invalid section"}), 400
    source_index = data.get("sourceIndex")
    destination_index = data.get("destinationIndex")
    if not all(isinstance(i, int) and not isinstance(i, bool) for i in (source_index, destination_index)):
        return jsonify({"error": "sourceIndex and destinationIndex must be integers"}), 400

    todos = todo_store.reorder_todos(source_index, destination_index, source_section, destination_section)
    return jsonify(todos)


@app.route("/api/todos/<todo_id>")
def get_todo(todo_id):
    """Get one todo by id."""
    todo = todo_store.get_todo(todo_id)
    if not todo:
        return jsonify({"error": "Todo not found"}), 404
    return jsonify(todo)


@app.route("/api/todos/slug/<slug>")
def get_todo_by_slug(slug):
    """Get one todo by slug."""
    todo = todo_store.get_todo_by_slug(slug)
    if not todo:
        return jsonify({"error": "Todo not found"}), 404
    return jsonify(todo)


@app.route("/api/todos/<todo_id>", methods=["PUT", "PATCH"])
def update_todo(todo_id):
    """Update any fields of a todo except its id."""
    data = request.get_json(silent=True)
    error = validate_todo_payload(data)
    if error:
        return jsonify({"error": error}), 400

    todo = todo_store.update_todo(todo_id, data)
    if not todo:
        return jsonify({"error": "Todo not found"}), 404
    return jsonify(todo)


@app.route("/api/todos/<todo_id>", methods=["DELETE"])
def delete_todo(todo_id):
    """Delete a todo."""
    if not todo_store.delete_todo(todo_id):
        return jsonify({"error": "Todo not found"}), 404
    return jsonify({"success": True})


@app.route("/api/todos/<todo_id>/html")
def get_todo_html(todo_id):
    """Get a todo's content as HTML for the rich-text editor."""
    todo = todo_store.get_todo(todo_id)
    if not todo:
        return jsonify({"error": "Todo not found"}), 404
    return jsonify({"html": markup.prepare_editor_content(todo["content"])})


@app.route("/api/markdown", methods=["POST"])
def render_markdown():
    """Render arbitrary markdown to HTML."""
    data = request.get_json(silent=True) or {}
    text = data.get("markdown", "")
    if not isinstance(text, str):
        return jsonify({"error": "markdown must be a string"}), 400
    return jsonify({"html": markup.markdown_to_html(text)})


@app.route("/api/tags")
def get_tags():
    """Get every tag in use, sorted."""
    return jsonify(search.all_tags(todo_store.list_todos()))


@app.route("/api/migrate", methods=["POST"])
def run_migration():
    """Upgrade legacy todo files in place."""
    summary = migrate.run_migration()
    return jsonify({"success": True, "message": "Migration completed successfully", "summary": summary})


@app.route("/api/theme", methods=["GET"])
def get_theme():
    """Get the current theme (light or dark)."""
    settings = load_settings()
    return jsonify({"theme": settings.get("theme", "light")})


@app.route("/api/theme", methods=["POST"])
def set_theme():
    """Set the theme."""
    data = request.get_json(silent=True) or {}
    theme = data.get("theme")
    if theme not in THEMES:
        return jsonify({"error": "theme must be 'light' or 'dark'"}), 400
    settings = load_settings()
    settings["theme"] = theme
    save_settings(settings)
    return jsonify({"success": True, "theme": theme})


def main():
    setup_logging()
    todo_store.ensure_todos_dir()
    port = int(os.environ.get("MDTODO_PORT", DEFAULT_PORT))
    logger.info("Storing todos in %s", todo_store.TODOS_DIR)
    print(f"Starting mdtodo on http://localhost:{port}")
    app.run(debug=True, port=port)


def migrate_main():
    setup_logging()
    summary = migrate.run_migration()
    print(
        f"Migration completed: {summary['titles']} titles, {summary['slugs']} slugs, "
        f"{summary['duplicates']} duplicates fixed, {summary['reordered']} reordered"
    )


if __name__ == "__main__":
    main()
