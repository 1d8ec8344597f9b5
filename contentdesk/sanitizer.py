"""
Per-field HTML sanitization built on bleach.

Three policies exist:

``CONTENT``
    Structural rich text: headings, lists, tables, links, images, iframes,
    quotes, code and inline emphasis.  Attributes are allow-listed per tag
    and the inline ``style`` attribute keeps only declarations whose value
    matches the pattern registered for that property.
``EXCERPT``
    Paragraphs, line breaks, bold and italic only.
``PLAIN``
    No markup at all.  Used for tags and every ``meta`` field.

Disallowed markup is stripped, never escaped-and-kept.  ``script`` and
``style`` elements are dropped together with their bodies.  ``sanitize`` is
idempotent: its output is a fixed point for the same policy.
"""
from __future__ import annotations

import enum
import re
from typing import Iterable

import tinycss2
from bleach.css_sanitizer import CSSSanitizer
from bleach.html5lib_shim import Filter
from bleach.sanitizer import Cleaner


class FieldPolicy(str, enum.Enum):
    CONTENT = "content"
    EXCERPT = "excerpt"
    PLAIN = "plain"


# ---------------------------------------------------------------------------
# Allow-lists
# ---------------------------------------------------------------------------

CONTENT_TAGS = frozenset({
    "h1", "h2", "h3", "h4", "h5", "h6",
    "p", "br", "hr", "div", "span",
    "blockquote", "pre", "code",
    "ul", "ol", "li",
    "table", "thead", "tbody", "tfoot", "tr", "th", "td", "caption",
    "a", "img", "iframe", "figure", "figcaption",
    "b", "strong", "i", "em", "u", "s", "sub", "sup",
})

CONTENT_ATTRIBUTES = {
    "*": ["style"],
    "a": ["href", "title", "target", "rel"],
    "img": ["src", "alt", "title", "width", "height"],
    "iframe": ["src", "width", "height", "frameborder", "allowfullscreen"],
    "td": ["colspan", "rowspan", "align"],
    "th": ["colspan", "rowspan", "align", "scope"],
}

EXCERPT_TAGS = frozenset({"p", "br", "b", "strong", "i", "em"})

PROTOCOLS = frozenset({"http", "https", "mailto"})

_HEX_OR_RGB = re.compile(
    r"^(#[0-9a-f]{3}|#[0-9a-f]{6}|rgba?\(\s*\d{1,3}%?\s*(,\s*\d{1,3}%?\s*){2}(,\s*(0|1|0?\.\d+)\s*)?\))$",
    re.IGNORECASE,
)

STYLE_VALUES: dict[str, re.Pattern[str]] = {
    "color": _HEX_OR_RGB,
    "background-color": _HEX_OR_RGB,
    "font-size": re.compile(r"^\d+(\.\d+)?(px|em|%)$", re.IGNORECASE),
    "text-align": re.compile(r"^(left|right|center|justify)$", re.IGNORECASE),
}

_DROP_WITH_BODY = re.compile(r"<(script|style)\b[^>]*>.*?</\1\s*>", re.IGNORECASE | re.DOTALL)
_MARKUP = re.compile(r"<[^>]*>")


# ---------------------------------------------------------------------------
# Style value filtering
# ---------------------------------------------------------------------------

def clean_style(style: str) -> str:
    """Return *style* with only allow-listed ``property: value`` pairs kept."""
    kept = []
    for decl in tinycss2.parse_declaration_list(style, skip_whitespace=True, skip_comments=True):
        if decl.type != "declaration" or decl.important:
            continue
        pattern = STYLE_VALUES.get(decl.lower_name)
        value = tinycss2.serialize(decl.value).strip()
        if pattern is not None and pattern.match(value):
            kept.append(f"{decl.lower_name}: {value}")
    return "; ".join(kept)


class StyleValueFilter(Filter):
    """html5lib filter that narrows surviving ``style`` attributes by value."""

    def __iter__(self):
        for token in super().__iter__():
            if token["type"] in ("StartTag", "EmptyTag") and token.get("data"):
                attrs = token["data"]
                if (None, "style") in attrs:
                    cleaned = clean_style(attrs[(None, "style")])
                    if cleaned:
                        attrs[(None, "style")] = cleaned
                    else:
                        del attrs[(None, "style")]
            yield token


# ---------------------------------------------------------------------------
# Cleaners
# ---------------------------------------------------------------------------

_CLEANERS: dict[FieldPolicy, Cleaner] = {
    FieldPolicy.CONTENT: Cleaner(
        tags=CONTENT_TAGS,
        attributes=CONTENT_ATTRIBUTES,
        protocols=PROTOCOLS,
        strip=True,
        strip_comments=True,
        css_sanitizer=CSSSanitizer(allowed_css_properties=frozenset(STYLE_VALUES)),
        filters=[StyleValueFilter],
    ),
    FieldPolicy.EXCERPT: Cleaner(
        tags=EXCERPT_TAGS,
        attributes={},
        strip=True,
        strip_comments=True,
    ),
    FieldPolicy.PLAIN: Cleaner(
        tags=frozenset(),
        attributes={},
        strip=True,
        strip_comments=True,
    ),
}


def _drop_executable_blocks(raw: str) -> str:
    # Repeat so that bodies split across nested openers are fully removed.
    previous = None
    while previous != raw:
        previous = raw
        raw = _DROP_WITH_BODY.sub("", raw)
    return raw


def sanitize(raw: str | None, policy: FieldPolicy) -> str:
    """Sanitize *raw* for a field governed by *policy*."""
    if not raw:
        return ""
    cleaned = _CLEANERS[policy].clean(_drop_executable_blocks(raw))
    return cleaned.strip()


def sanitize_tags(tags: Iterable[str] | None) -> list[str]:
    """Plain-text, lower-cased, de-duplicated tags; blanks are dropped."""
    result: list[str] = []
    for tag in tags or ():
        clean = sanitize(tag, FieldPolicy.PLAIN).lower()
        if clean and clean not in result:
            result.append(clean)
    return result


def sanitize_keywords(keywords: Iterable[str] | None) -> list[str]:
    result: list[str] = []
    for keyword in keywords or ():
        clean = sanitize(keyword, FieldPolicy.PLAIN)
        if clean and clean not in result:
            result.append(clean)
    return result


def strip_markup(html: str) -> str:
    """Replace every tag in already-sanitized *html* with a space."""
    return _MARKUP.sub(" ", html)
