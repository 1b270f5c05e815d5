"""Tests for filename and slug derivation."""

from datetime import datetime

import pytest

import todo_filenames as filenames


class TestGenerateFilename:
    """Title -> base filename candidate."""

    def test_strips_invalid_characters(self):
        """Reserved filesystem characters are removed, case is kept."""
        name = filenames.generate_filename_from_title("Review <draft>.docx")
        assert name == "Review-draft.docx"
        assert not any(c in name for c in '<>:"/\\|?*')
        assert len(name) <= 200

    def test_collapses_whitespace_to_hyphen(self):
        assert filenames.generate_filename_from_title("Buy   milk\tand eggs") == "Buy-milk-and-eggs"

    def test_strips_leading_and_trailing_dots_and_hyphens(self):
        assert filenames.generate_filename_from_title("  ...hidden file.. ") == "hidden-file"
        assert filenames.generate_filename_from_title("- dash -") == "dash"

    def test_length_capped_at_200(self):
        assert len(filenames.generate_filename_from_title("a" * 500)) == 200

    def test_multibyte_title_fits_filename_limit(self):
        """Multi-byte titles are cut on a character boundary within 200 bytes."""
        name = filenames.generate_filename_from_title("買い物" * 100)
        assert len(name.encode("utf-8")) <= 200
        assert name
        assert set(name) <= set("買い物")

    def test_empty_when_nothing_usable(self):
        assert filenames.generate_filename_from_title('???<>"') == ""
        assert filenames.generate_filename_from_title("   ") == ""
        assert filenames.generate_filename_from_title(None) == ""

    @pytest.mark.parametrize("title", ["CON", "con", "Nul", "COM1", "lpt9"])
    def test_reserved_names_are_renamed(self, title):
        name = filenames.generate_filename_from_title(title)
        assert name == f"{title}-todo"
        assert not filenames.is_reserved_name(name)

    def test_reserved_prefix_is_not_reserved(self):
        assert filenames.generate_filename_from_title("Console") == "Console"
        assert filenames.generate_filename_from_title("COM10") == "COM10"


class TestGenerateSlug:
    """Title -> lowercase slug."""

    def test_basic_slug(self):
        assert filenames.generate_slug_from_title("Hello, World!") == "hello-world"

    def test_collapses_hyphens(self):
        assert filenames.generate_slug_from_title("a - b -- c") == "a-b-c"

    def test_strips_dots(self):
        assert filenames.generate_slug_from_title("Review draft.docx") == "review-draftdocx"

    def test_length_capped_at_50(self):
        slug = filenames.generate_slug_from_title("word " * 40)
        assert len(slug) <= 50
        assert not slug.endswith("-")

    def test_empty_slug(self):
        assert filenames.generate_slug_from_title("!!!") == ""

    def test_non_ascii_letters_dropped(self):
        assert filenames.generate_slug_from_title("買い物") == ""
        assert filenames.generate_slug_from_title("Café plans") == "caf-plans"

    def test_reserved_slug(self):
        assert filenames.generate_slug_from_title("Aux") == "aux-todo"


class TestCandidatesAndFallback:

    def test_unique_candidates(self):
        candidates = filenames.unique_filename_candidates("Plan")
        assert candidates[0] == "Plan"
        assert candidates[1] == "Plan-2"
        assert candidates[-1] == "Plan-10"
        assert len(candidates) == 10

    def test_fallback_filename(self):
        name = filenames.generate_fallback_filename(datetime(2026, 1, 31, 9, 15, 0))
        assert name == "todo-2026-01-31T09-15-00"

    def test_fallback_filename_is_valid(self):
        is_valid, error = filenames.validate_filename(filenames.generate_fallback_filename())
        assert is_valid
        assert error is None


class TestValidateFilename:

    @pytest.mark.parametrize("name, message", [
        ("", "Filename is required"),
        ("a" * 201, "Filename must be at most 200 characters"),
        ("a:b", "Filename contains invalid characters"),
        ("PRN", "Filename is reserved"),
    ])
    def test_invalid(self, name, message):
        assert filenames.validate_filename(name) == (False, message)

    def test_valid(self):
        assert filenames.validate_filename("Buy-milk") == (True, None)
