from __future__ import annotations

from bs4 import BeautifulSoup

from lectern.chunking import chunk_text_for_virtualization
from lectern.render import render_chunk_html, token_dom_id
from lectern.selection import MODE_SINGLE, SelectionRange


def _soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


def test_tokens_get_stable_ids_and_escaped_text() -> None:
    document = chunk_text_for_virtualization("Hi <b>there</b>\nnext line")
    html = render_chunk_html(document.chunks[1])
    soup = _soup(render_chunk_html(document.chunks[0]))
    paragraph = soup.find("div", class_="reading-paragraph")
    assert paragraph["data-chunk"] == "chunk-0"
    assert paragraph.get_text() == "Hi <b>there</b>\n"
    assert soup.find("b") is None
    word = soup.find(id="word-2")
    assert word.get_text() == "<b>there</b>"
    assert word["data-index"] == "2"
    assert "cursor-pointer" in word["class"]
    assert token_dom_id(4) in html


def test_whitespace_is_not_clickable() -> None:
    document = chunk_text_for_virtualization("a b")
    soup = _soup(render_chunk_html(document.chunks[0]))
    spans = soup.div.find_all("span", recursive=False)
    assert [span.get("id") for span in spans] == ["word-0", None, "word-2"]


def test_selection_target_and_annotation_classes() -> None:
    document = chunk_text_for_virtualization("one two three four")
    html = render_chunk_html(
        document.chunks[0],
        highlighted={0, 2},
        selection=SelectionRange(2, 4, MODE_SINGLE),
        target_token=6,
        bookmarked=True,
    )
    soup = _soup(html)
    assert soup.find(id="word-0").find("span", class_="underline") is not None
    selected = soup.find(id="word-2")
    assert "range" in selected["class"]
    assert selected.find("span", class_="underline") is None
    assert "range" in soup.find(id="word-4")["class"]
    assert "target" in soup.find(id="word-6")["class"]
    assert soup.find("span", class_="bookmark-marker")["title"] == "Bookmarked"


def test_phrase_anchor_is_marked() -> None:
    document = chunk_text_for_virtualization("one two")
    soup = _soup(
        render_chunk_html(document.chunks[0], anchor_token=2, phrase_mode=True)
    )
    anchor = soup.find(id="word-2")
    assert "anchor" in anchor["class"]
    assert "cursor-alias" in anchor["class"]
    assert soup.find("span", class_="bookmark-marker") is None
