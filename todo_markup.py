"""Markdown rendering for the editor."""

import re

import markdown

MARKDOWN_EXTENSIONS = ["fenced_code", "tables", "sane_lists", "nl2br"]

HTML_TAG_PATTERN = re.compile(r"<[^>]+>")


def markdown_to_html(text):
    return markdown.markdown(text or "", extensions=MARKDOWN_EXTENSIONS)


def is_html_content(text):
    """Guess whether stored content is already HTML rather than markdown."""
    return bool(HTML_TAG_PATTERN.search(text or ""))


def prepare_editor_content(text):
    """Return HTML the rich-text editor can load, converting markdown if needed."""
    if is_html_content(text):
        return text
    return markdown_to_html(text)
