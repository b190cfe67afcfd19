from app.services.readme_cleaner import (
    CODE_BLOCK_PLACEHOLDER,
    TRUNCATION_MARKER,
    clean_readme,
    has_enough_signal,
    truncate_text,
)


def test_clean_readme_strips_markup_and_replaces_code_blocks() -> None:
    readme = (
        "# Widget\n\n"
        "<!-- hidden -->\n"
        "![logo](docs/logo.png)\n"
        "A **fast** tool for [parsing](https://example.com) `logs`.\n\n\n\n"
        "```bash\npip install widget\n```\n"
        "- first item\n"
        "1. numbered\n"
        "<p align=\"center\">centered</p>\n"
    )

    cleaned = clean_readme(readme)

    assert "hidden" not in cleaned
    assert "logo.png" not in cleaned
    assert "pip install" not in cleaned
    assert CODE_BLOCK_PLACEHOLDER in cleaned
    assert "A fast tool for parsing logs." in cleaned
    assert cleaned.startswith("Widget")
    assert "first item" in cleaned and "- first" not in cleaned
    assert "centered" in cleaned and "<p" not in cleaned
    assert "\n\n\n" not in cleaned


def test_clean_readme_is_idempotent() -> None:
    readme = "## Intro\n\nSome *emphasis* and __bold__ text.\n\n---\n\nMore lines here.\n"

    once = clean_readme(readme)

    assert clean_readme(once) == once


def test_clean_readme_handles_missing_input() -> None:
    assert clean_readme(None) == ""
    assert clean_readme("") == ""


def test_truncate_prefers_sentence_boundary_near_the_limit() -> None:
    text = "A" * 90 + ". " + "B" * 50

    truncated = truncate_text(text, 100)

    assert truncated == "A" * 90 + "." + TRUNCATION_MARKER


def test_truncate_cuts_hard_when_no_late_sentence_boundary() -> None:
    text = "Short. " + "C" * 200

    truncated = truncate_text(text, 100)

    assert truncated == text[:100] + TRUNCATION_MARKER
    assert truncate_text("tiny", 100) == "tiny"


def test_signal_threshold_is_inclusive() -> None:
    assert has_enough_signal("x" * 100) is True
    assert has_enough_signal("x" * 99) is False
    assert has_enough_signal("x" * 10, min_chars=10) is True
