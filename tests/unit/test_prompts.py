"""Unit tests for chat and extraction prompts."""

from pdfchat.orchestration.prompts import EXTRACTION_PROMPT, build_system_prompt


def test_system_prompt_names_both_tools() -> None:
    prompt = build_system_prompt()
    assert "semanticSearch" in prompt
    assert "pageSearch" in prompt


def test_system_prompt_requires_citations_and_sources() -> None:
    prompt = build_system_prompt()
    assert "[Pages X-Y]" in prompt
    assert "[Page X]" in prompt
    assert "Sources:" in prompt


def test_system_prompt_asks_for_escaped_dollars() -> None:
    assert "\\$" in build_system_prompt()


def test_system_prompt_covers_attached_images() -> None:
    assert "image" in build_system_prompt().lower()


def test_current_page_only_mentioned_when_known() -> None:
    assert "currently viewing" not in build_system_prompt()
    assert "currently viewing page 7" in build_system_prompt(current_page=7)


def test_extraction_prompt_preserves_structure() -> None:
    for element in ("headings", "lists", "tables", "code", "equations"):
        assert element in EXTRACTION_PROMPT
