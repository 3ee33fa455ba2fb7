"""Content packager: wrap chapter markdown for the Confluence markdown macro.

The page body is a single ``markdown`` structured macro whose plain-text
body holds the chapter source in a CDATA section.  Chapter text is
untrusted relative to that container, so three rules apply:

- ``]]>`` would close the CDATA section early; it is split across two
  sections (``]]]]><![CDATA[>``).
- Characters that are illegal in XML 1.0 are dropped.
- Confluence before 7.3 cannot store characters that need four UTF-8
  bytes (emoji and other astral-plane characters); they become ``⸮``.

Output is a pure function of the input, which change detection relies on.
"""

from __future__ import annotations

import logging
import re

logger = logging.getLogger(__name__)

# Fixed so that identical input always packs to identical bytes
MACRO_ID = "249327eb-2c99-42ca-a7a7-487e1c0c7e04"

EMOJI_MIN_SERVER_VERSION = (7, 3, 0)
REPLACEMENT_CHAR = "⸮"

_CDATA_END = "]]>"
_CDATA_END_ESCAPED = "]]]]><![CDATA[>"

_MACRO_OPEN = (
    '<ac:structured-macro ac:name="markdown" ac:schema-version="1" '
    f'ac:macro-id="{MACRO_ID}">'
    "<ac:plain-text-body>"
)
_MACRO_CLOSE = "</ac:plain-text-body></ac:structured-macro>"

# Everything outside the XML 1.0 Char production
_INVALID_XML_CHARS = re.compile(
    "[^\u0009\u000a\u000d\u0020-\ud7ff\ue000-\ufffd\U00010000-\U0010ffff]"
)

_PLAIN_TEXT_BODY = re.compile(
    r"<ac:plain-text-body>(.*)</ac:plain-text-body>", re.DOTALL
)
_CDATA_SECTION = re.compile(r"<!\[CDATA\[(.*?)\]\]>", re.DOTALL)


def supports_emoji(server_version: tuple[int, ...] | None) -> bool:
    """Whether the server can store four-byte UTF-8 characters.

    An unknown server version is treated as a modern one.
    """
    if server_version is None:
        return True
    return tuple(server_version) >= EMOJI_MIN_SERVER_VERSION


def replace_astral_chars(text: str, warn: bool = True) -> str:
    """Replace characters outside the Basic Multilingual Plane."""
    out: list[str] = []
    for ch in text:
        if ord(ch) > 0xFFFF:
            if warn:
                logger.warning("Removed unsupported char: %s", ch)
            out.append(REPLACEMENT_CHAR)
        else:
            out.append(ch)
    return "".join(out)


def to_cdata(text: str, allow_emoji: bool = True) -> str:
    """Return *text* as one or more CDATA sections.

    Args:
        text: Raw chapter source.
        allow_emoji: ``False`` for servers older than Confluence 7.3.
    """
    if not allow_emoji:
        text = replace_astral_chars(text)
    text = _INVALID_XML_CHARS.sub("", text)
    escaped = _CDATA_END_ESCAPED.join(text.split(_CDATA_END))
    return f"<![CDATA[{escaped}]]>"


def package_content(markdown: str, allow_emoji: bool = True) -> str:
    """Wrap chapter markdown in the markdown macro container.

    Args:
        markdown: Rendered chapter source.
        allow_emoji: ``False`` for servers older than Confluence 7.3.

    Returns:
        Page body in Confluence storage format.
    """
    return f"{_MACRO_OPEN}{to_cdata(markdown, allow_emoji)}{_MACRO_CLOSE}"


def unwrap_page_content(body: str) -> str | None:
    """Recover the markdown source from a packaged page body.

    Confluence may re-serialise the storage format (attribute order,
    whitespace around the macro), so this extracts the CDATA payload
    rather than relying on the wrapper bytes.

    Returns:
        The enclosed text, or ``None`` if *body* is not a markdown macro.
    """
    if 'ac:name="markdown"' not in body:
        return None
    match = _PLAIN_TEXT_BODY.search(body)
    if match is None:
        return None
    sections = _CDATA_SECTION.findall(match.group(1))
    if not sections:
        return None
    return "".join(sections)


def prepare_source(markdown: str, allow_emoji: bool = True) -> str:
    """The text ``unwrap_page_content`` yields after packaging *markdown*."""
    if not allow_emoji:
        markdown = replace_astral_chars(markdown, warn=False)
    return _INVALID_XML_CHARS.sub("", markdown)
