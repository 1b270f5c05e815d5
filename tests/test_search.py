"""Tests for fuzzy search, filters and markdown rendering."""

import todo_markup as markup
import todo_search as search


def todo(title, content="", tags=None, priority="medium", completed=False):
    return {
        "meta": {"id": title, "title": title, "tags": tags or [], "priority": priority, "completed": completed},
        "content": content,
    }


class TestFuzzySearch:

    def test_title_match(self):
        todos = [todo("Call mom"), todo("Buy groceries")]
        result = search.fuzzy_search(todos, "groceries")
        assert [t["meta"]["title"] for t in result] == ["Buy groceries"]

    def test_case_insensitive(self):
        result = search.fuzzy_search([todo("Buy MILK")], "milk")
        assert len(result) == 1

    def test_tolerates_typos(self):
        result = search.fuzzy_search([todo("Quarterly report"), todo("Walk dog")], "quartrly")
        assert [t["meta"]["title"] for t in result] == ["Quarterly report"]

    def test_title_match_ranks_above_content_match(self):
        todos = [todo("Shopping", content="buy milk"), todo("Milk run")]
        result = search.fuzzy_search(todos, "milk")
        assert [t["meta"]["title"] for t in result] == ["Milk run", "Shopping"]

    def test_matches_tags(self):
        result = search.fuzzy_search([todo("Task", tags=["finance"]), todo("Other")], "finance")
        assert [t["meta"]["title"] for t in result] == ["Task"]

    def test_short_query_returns_everything(self):
        todos = [todo("A"), todo("B")]
        assert search.fuzzy_search(todos, "x") == todos
        assert search.fuzzy_search(todos, "  ") == todos


class TestFilters:

    def test_tag_filter_matches_any(self):
        todos = [todo("A", tags=["work"]), todo("B", tags=["home"]), todo("C", tags=["work", "home"])]
        result = search.search_todos(todos, tags=["work"])
        assert [t["meta"]["title"] for t in result] == ["A", "C"]

    def test_priority_filter(self):
        todos = [todo("A", priority="high"), todo("B", priority="low"), todo("C")]
        result = search.search_todos(todos, priorities=["high", "medium"])
        assert [t["meta"]["title"] for t in result] == ["A", "C"]

    def test_hide_completed(self):
        todos = [todo("A", completed=True), todo("B")]
        result = search.search_todos(todos, show_completed=False)
        assert [t["meta"]["title"] for t in result] == ["B"]

    def test_no_filters_keeps_order(self):
        todos = [todo("B"), todo("A")]
        assert search.search_todos(todos) == todos

    def test_all_tags(self):
        todos = [todo("A", tags=["work", "urgent"]), todo("B", tags=["home", "work"])]
        assert search.all_tags(todos) == ["home", "urgent", "work"]


class TestMarkup:

    def test_markdown_to_html(self):
        html = markup.markdown_to_html("# Title\n\n- one\n- two")
        assert "<h1>Title</h1>" in html
        assert "<li>one</li>" in html

    def test_fenced_code(self):
        html = markup.markdown_to_html("```\ncode\n```")
        assert "<code>" in html

    def test_is_html_content(self):
        assert markup.is_html_content("<p>hi</p>")
        assert not markup.is_html_content("2 < 3")
        assert not markup.is_html_content("")

    def test_prepare_editor_content(self):
        assert markup.prepare_editor_content("<p>kept</p>") == "<p>kept</p>"
        assert "<strong>bold</strong>" in markup.prepare_editor_content("**bold**")
