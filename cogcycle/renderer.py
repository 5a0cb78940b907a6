"""Markdown → HTML for insight and task text.

markdown-it-py does the parsing, pygments highlights fenced code, and
$...$ / $$...$$ become escaped math spans for a client-side typesetter.
render() never raises: on any internal fault it falls back to escaped text.
"""

import html
import logging
import re
from dataclasses import asdict, dataclass, replace
from html.parser import HTMLParser

from markdown_it import MarkdownIt
from mdit_py_plugins.dollarmath import dollarmath_plugin
from pygments import highlight
from pygments.formatters import HtmlFormatter
from pygments.lexers import TextLexer, get_lexer_by_name
from pygments.util import ClassNotFound

logger = logging.getLogger("cogcycle.renderer")

_MATH = re.compile(r"\$\$[\s\S]+?\$\$|\$[^$\n]+?\$")
_CODE = re.compile(r"```[\s\S]*?```|`[^`]+?`")
_TABLE = re.compile(r"\|.*\|")

# Heuristics for "this looks like markdown"
_MARKDOWN_PATTERNS = [
    re.compile(r"^#{1,6}\s", re.M),  # headers
    re.compile(r"^\*\s", re.M),  # unordered list
    re.compile(r"^\d+\.\s", re.M),  # ordered list
    re.compile(r"```"),  # code blocks
    re.compile(r"\*\*.*\*\*"),  # bold
    re.compile(r"\*.*\*"),  # italic
    re.compile(r"\[.*\]\(.*\)"),  # links
    re.compile(r"\|.*\|"),  # tables
    re.compile(r"\$.*\$"),  # math
]


@dataclass(frozen=True)
class RendererConfig:
    enable_math: bool = True
    enable_code_highlight: bool = True
    enable_tables: bool = True
    sanitize_html: bool = True


@dataclass
class RenderedText:
    html: str
    plain_text: str
    has_math: bool = False
    has_code: bool = False
    has_tables: bool = False

    def to_dict(self) -> dict:
        return {
            "html": self.html,
            "plainText": self.plain_text,
            "hasMath": self.has_math,
            "hasCode": self.has_code,
            "hasTables": self.has_tables,
        }


class _TextExtractor(HTMLParser):
    def __init__(self):
        super().__init__()
        self.parts: list[str] = []

    def handle_data(self, data):
        self.parts.append(data)


def strip_html(markup: str) -> str:
    parser = _TextExtractor()
    parser.feed(markup)
    parser.close()
    return "".join(parser.parts)


def escape_html(text: str) -> str:
    return html.escape(text, quote=False)


def _highlight_code(code: str, lang: str, _attrs: str) -> str:
    try:
        lexer = get_lexer_by_name(lang) if lang else TextLexer()
    except ClassNotFound:
        lexer = TextLexer()
    return highlight(code, lexer, HtmlFormatter(nowrap=True))


class TextRenderer:
    """Owns its own parser; build one per component that needs rendering."""

    def __init__(self, config: RendererConfig | None = None):
        self.config = config or RendererConfig()
        self._md = self._build_parser()

    @classmethod
    def from_settings(cls, settings: dict) -> "TextRenderer":
        fields = RendererConfig.__dataclass_fields__
        return cls(RendererConfig(**{k: v for k, v in settings.items() if k in fields}))

    def _build_parser(self) -> MarkdownIt:
        options = {
            "breaks": True,
            "html": not self.config.sanitize_html,
            "langPrefix": "hljs language-",
        }
        if self.config.enable_code_highlight:
            options["highlight"] = _highlight_code
        md = MarkdownIt("commonmark", options).enable("strikethrough")
        if self.config.enable_tables:
            md.enable("table")
        if self.config.enable_math:
            md.use(dollarmath_plugin, double_inline=True)
        return md

    def render(self, content: str) -> RenderedText:
        try:
            has_math = bool(_MATH.search(content))
            has_code = bool(_CODE.search(content))
            has_tables = bool(_TABLE.search(content))

            if not self.is_markdown(content):
                return RenderedText(
                    escape_html(content), content, has_math, has_code, has_tables
                )

            markup = self._md.render(content)
            return RenderedText(
                markup, strip_html(markup), has_math, has_code, has_tables
            )
        except Exception as e:
            logger.error(f"Rendering error: {e}")
            return RenderedText(escape_html(str(content)), content)

    def render_inline(self, content: str) -> str:
        """Render for previews: block wrappers (p, div) removed."""
        markup = self.render(content).html
        return re.sub(r"</?(p|div)>", "", markup).strip()

    @staticmethod
    def is_markdown(content: str) -> bool:
        return any(pattern.search(content) for pattern in _MARKDOWN_PATTERNS)

    def update_config(self, **changes) -> RendererConfig:
        self.config = replace(self.config, **changes)
        self._md = self._build_parser()
        logger.info(f"Configuration updated: {changes}")
        return self.config

    def get_config(self) -> dict:
        return asdict(self.config)
