"""Tests for markdown rendering."""

import html

from cogcycle.renderer import RendererConfig, TextRenderer, strip_html


def test_plain_text_is_escaped_not_parsed():
    """Text with no markdown comes back as escaped text and no flags."""
    rendered = TextRenderer().render("plain text")
    assert rendered.html == html.escape("plain text")
    assert rendered.plain_text == "plain text"
    assert not (rendered.has_math or rendered.has_code or rendered.has_tables)


def test_plain_text_with_angle_brackets():
    """Plain text is still escaped."""
    rendered = TextRenderer().render("a < b & c")
    assert rendered.html == "a &lt; b &amp; c"


def test_fenced_code_is_highlighted():
    """Fenced blocks get the language class and pygments markup."""
    rendered = TextRenderer().render("```python\nx = 1\n```")
    assert rendered.has_code
    assert 'class="hljs language-python"' in rendered.html
    assert "<span" in rendered.html
    assert "x = 1" in rendered.plain_text


def test_unknown_language_falls_back_to_text():
    """An unknown fence language does not break rendering."""
    rendered = TextRenderer().render("```nosuchlang\nhello\n```")
    assert "hello" in rendered.html
    assert rendered.has_code


def test_math_becomes_spans():
    """Inline math is left for a client-side typesetter."""
    rendered = TextRenderer().render("Energy is $E = mc^2$ here")
    assert rendered.has_math
    assert 'class="math inline"' in rendered.html


def test_math_disabled():
    """With math off, dollars are plain text."""
    renderer = TextRenderer(RendererConfig(enable_math=False))
    rendered = renderer.render("Costs $5 and $6")
    assert "math" not in rendered.html
    assert "$5" in rendered.html


def test_tables():
    """Pipe tables render when enabled."""
    source = "| a | b |\n|---|---|\n| 1 | 2 |"
    assert "<table>" in TextRenderer().render(source).html
    rendered = TextRenderer(RendererConfig(enable_tables=False)).render(source)
    assert "<table>" not in rendered.html
    assert rendered.has_tables


def test_raw_html_sanitized():
    """Raw HTML is escaped unless sanitizing is switched off."""
    source = "**bold** <script>alert(1)</script>"
    assert "<script>" not in TextRenderer().render(source).html
    unsafe = TextRenderer(RendererConfig(sanitize_html=False))
    assert "<script>" in unsafe.render(source).html


def test_render_falls_back_on_parser_fault(monkeypatch):
    """render() never raises; a parser fault yields escaped text."""
    renderer = TextRenderer()

    def boom(_content):
        raise RuntimeError("parser exploded")

    monkeypatch.setattr(renderer._md, "render", boom)
    rendered = renderer.render("# Title <b>")
    assert rendered.html == "# Title &lt;b&gt;"
    assert rendered.plain_text == "# Title <b>"
    assert not rendered.has_code


def test_render_inline_drops_paragraphs():
    """Inline rendering has no block wrappers."""
    assert TextRenderer().render_inline("**hi**") == "<strong>hi</strong>"


def test_is_markdown():
    """Common markdown markers are detected."""
    assert TextRenderer.is_markdown("# Title")
    assert TextRenderer.is_markdown("* item")
    assert TextRenderer.is_markdown("1. first")
    assert TextRenderer.is_markdown("see [docs](http://x)")
    assert not TextRenderer.is_markdown("just words")


def test_update_config_rebuilds_parser():
    """Config changes apply to the next render."""
    renderer = TextRenderer()
    renderer.update_config(enable_tables=False)
    assert renderer.get_config()["enable_tables"] is False
    assert "<table>" not in renderer.render("| a |\n|---|\n| 1 |").html


def test_strip_html():
    assert strip_html("<p>a &amp; <em>b</em></p>") == "a & b"


def test_to_dict_keys():
    assert set(TextRenderer().render("x").to_dict()) == {
        "html",
        "plainText",
        "hasMath",
        "hasCode",
        "hasTables",
    }
