"""Fuzzy search and filtering over loaded todos."""

from rapidfuzz import fuzz

# Field weights for ranking matches
SEARCH_WEIGHTS = {"title": 0.6, "content": 0.3, "tags": 0.1}
SCORE_CUTOFF = 60
MIN_QUERY_LENGTH = 2


def _field_scores(query, todo):
    meta = todo["meta"]
    tag_scores = [fuzz.partial_ratio(query, tag.lower()) for tag in meta.get("tags", [])]
    return {
        "title": fuzz.partial_ratio(query, (meta.get("title") or "").lower()),
        "content": fuzz.partial_ratio(query, (todo.get("content") or "").lower()),
        "tags": max(tag_scores, default=0),
    }


def fuzzy_search(todos, query):
    """Return todos matching query, best matches first.

    A todo matches when any of its fields scores at least SCORE_CUTOFF;
    matches are ranked by the weighted score across title, content and tags.
    """
    query = (query or "").strip().lower()
    if len(query) < MIN_QUERY_LENGTH:
        return list(todos)

    ranked = []
    for position, todo in enumerate(todos):
        scores = _field_scores(query, todo)
        if max(scores.values()) < SCORE_CUTOFF:
            continue
        weighted = sum(SEARCH_WEIGHTS[field] * score for field, score in scores.items())
        ranked.append((-weighted, position, todo))
    ranked.sort(key=lambda item: item[:2])
    return [todo for _, _, todo in ranked]


def search_todos(todos, query="", tags=None, priorities=None, show_completed=True):
    """Apply the search box and filter bar to a todo list.

    Tags match if the todo has any of the selected tags.
    """
    result = fuzzy_search(todos, query)
    if tags:
        result = [t for t in result if any(tag in t["meta"].get("tags", []) for tag in tags)]
    if priorities:
        result = [t for t in result if t["meta"].get("priority") in priorities]
    if not show_completed:
        result = [t for t in result if not t["meta"].get("completed")]
    return result


def all_tags(todos):
    """Sorted list of every tag in use."""
    return sorted({tag for todo in todos for tag in todo["meta"].get("tags", [])})
