"""
HTML and text helpers shared by the validator, scorer, humanizer and linker.

Pure functions, no I/O.  Text analysis is heuristic (vowel-group syllables,
regex sentence splitting) and has no NLP dependency.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from html.parser import HTMLParser
from typing import Dict, List, Optional, Set, Tuple
from urllib.parse import urlparse

logger = logging.getLogger("html_utils")

_TAG_RE = re.compile(r"<[^>]+>")
_WS_RE = re.compile(r"\s+")
_LINK_RE = re.compile(
    r'<a\s+[^>]*href=["\']([^"\']+)["\'][^>]*>([\s\S]*?)</a>', re.IGNORECASE
)
_HEADING_RE = re.compile(r"<h([1-6])(\s[^>]*)?>([\s\S]*?)</h\1>", re.IGNORECASE)
_ID_ATTR_RE = re.compile(r'\bid=["\']([^"\']*)["\']', re.IGNORECASE)

_ABBREVIATIONS = [
    "Mr.", "Mrs.", "Ms.", "Dr.", "Prof.", "Sr.", "Jr.", "St.",
    "vs.", "etc.", "i.e.", "e.g.", "a.m.", "p.m.", "U.S.",
    "U.K.", "Fig.", "No.", "Vol.",
]


# ---------------------------------------------------------------------------
# Stripping
# ---------------------------------------------------------------------------


def strip_tags(html: str) -> str:
    """Replace tags with spaces and collapse whitespace."""
    if not html:
        return ""
    return _WS_RE.sub(" ", _TAG_RE.sub(" ", html)).strip()


class _HTMLStripper(HTMLParser):
    """Extract plain text, preserving block boundaries as newlines."""

    _BLOCK_TAGS = {
        "p", "div", "h1", "h2", "h3", "h4", "h5", "h6",
        "li", "blockquote", "tr", "br", "hr", "ul", "ol",
    }

    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self._pieces: List[str] = []

    def handle_starttag(self, tag: str, attrs: list) -> None:
        if tag.lower() in self._BLOCK_TAGS:
            self._pieces.append("\n")

    def handle_endtag(self, tag: str) -> None:
        if tag.lower() in self._BLOCK_TAGS:
            self._pieces.append("\n")

    def handle_data(self, data: str) -> None:
        self._pieces.append(data)

    def get_text(self) -> str:
        return "".join(self._pieces)


def html_to_text(html: str) -> str:
    """Plain text with one block element per line and entities decoded."""
    stripper = _HTMLStripper()
    stripper.feed(html or "")
    stripper.close()
    lines = []
    for line in stripper.get_text().split("\n"):
        cleaned = " ".join(line.split())
        if cleaned:
            lines.append(cleaned)
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Counting
# ---------------------------------------------------------------------------


def count_words(html: str) -> int:
    """Count whitespace-separated words in HTML/text content, stripping tags."""
    text = strip_tags(html)
    return len(text.split()) if text else 0


def count_syllables(word: str) -> int:
    """Count syllables in a word using a vowel-group heuristic (minimum 1)."""
    word = re.sub(r"[^a-z]", "", word.lower())
    if not word:
        return 0

    vowels = set("aeiouy")
    count = 0
    prev_vowel = False
    for char in word:
        is_vowel = char in vowels
        if is_vowel and not prev_vowel:
            count += 1
        prev_vowel = is_vowel

    # Silent e
    if word.endswith("e") and len(word) > 2 and word[-2] not in vowels:
        count -= 1
    if len(word) > 2 and word.endswith("le") and word[-3] not in vowels and count == 0:
        count += 1
    if word.endswith("ed") and len(word) > 3 and word[-3] not in "dt" and count > 1:
        count -= 1

    return max(1, count)


def split_sentences(text: str) -> List[str]:
    """Split plain text into sentences, protecting common abbreviations."""
    protected = text
    placeholders: Dict[str, str] = {}
    for i, abbr in enumerate(_ABBREVIATIONS):
        ph = f"__ABBR{i}__"
        placeholders[ph] = abbr
        protected = protected.replace(abbr, ph)

    sentences = []
    for s in re.split(r"(?<=[.!?])\s+", protected):
        for ph, abbr in placeholders.items():
            s = s.replace(ph, abbr)
        s = s.strip()
        if s:
            sentences.append(s)
    return sentences


def split_words(text: str) -> List[str]:
    return re.findall(r"[a-zA-Z']+", text)


def average_sentence_length(html: str) -> float:
    """Mean words per sentence, splitting plain text on runs of ``.!?``."""
    text = strip_tags(html)
    sentences = [s for s in re.split(r"[.!?]+", text) if s.strip()]
    if not sentences:
        return 0.0
    return sum(len(s.split()) for s in sentences) / len(sentences)


def flesch_reading_ease(html: str) -> float:
    """Flesch Reading Ease (0-100, higher is easier)."""
    text = html_to_text(html)
    words = split_words(text)
    sentences = split_sentences(text.replace("\n", " "))
    if not words or not sentences:
        return 0.0
    syllables = sum(count_syllables(w) for w in words)
    asl = len(words) / len(sentences)
    asw = syllables / len(words)
    return round(max(0.0, min(100.0, 206.835 - 1.015 * asl - 84.6 * asw)), 1)


# ---------------------------------------------------------------------------
# Links & headings
# ---------------------------------------------------------------------------


@dataclass
class LinkRef:
    href: str
    text: str
    start: int
    end: int


def extract_links(html: str) -> List[LinkRef]:
    """All ``<a href>`` elements in document order."""
    return [
        LinkRef(href=m.group(1), text=strip_tags(m.group(2)), start=m.start(), end=m.end())
        for m in _LINK_RE.finditer(html or "")
    ]


def link_domain(href: str) -> str:
    """Lowercased host without ``www.``; empty for relative links."""
    try:
        host = urlparse(href).hostname or ""
    except ValueError:
        return ""
    host = host.lower()
    return host[4:] if host.startswith("www.") else host


def domain_matches(host: str, domain: str) -> bool:
    """True when *host* is *domain* or one of its subdomains."""
    domain = domain.lower()
    return host == domain or host.endswith("." + domain)


def is_internal_link(href: str, site_domain: str) -> bool:
    if href.startswith("/") and not href.startswith("//"):
        return True
    host = link_domain(href)
    return bool(host) and domain_matches(host, site_domain)


def is_external_link(href: str, site_domain: str) -> bool:
    return href.lower().startswith(("http://", "https://")) and not is_internal_link(href, site_domain)


def count_links(html: str, site_domain: str) -> Tuple[int, int]:
    """Return (internal, external) link counts; in-page anchors are ignored."""
    internal = external = 0
    for link in extract_links(html):
        if link.href.startswith("#"):
            continue
        if is_internal_link(link.href, site_domain):
            internal += 1
        elif is_external_link(link.href, site_domain):
            external += 1
    return internal, external


def linked_urls(html: str) -> Set[str]:
    return {link.href for link in extract_links(html)}


def normalize_url(url: str) -> str:
    """Comparison key: lowercased, no scheme, no ``www.``, no trailing slash."""
    key = url.strip().lower()
    key = re.sub(r"^https?://", "", key)
    if key.startswith("www."):
        key = key[4:]
    return key.rstrip("/")


@dataclass
class HeadingRef:
    level: int
    text: str
    id: Optional[str]
    html: str


def extract_headings(html: str) -> List[HeadingRef]:
    headings = []
    for m in _HEADING_RE.finditer(html or ""):
        attrs = m.group(2) or ""
        id_match = _ID_ATTR_RE.search(attrs)
        headings.append(HeadingRef(
            level=int(m.group(1)),
            text=strip_tags(m.group(3)),
            id=id_match.group(1) if id_match else None,
            html=m.group(0),
        ))
    return headings


def count_headings(html: str, level: int = 2) -> int:
    return len(re.findall(rf"<h{level}[\s>]", html or "", re.IGNORECASE))


# ---------------------------------------------------------------------------
# Normalisation
# ---------------------------------------------------------------------------


def generate_slug(title: str, max_len: int = 60) -> str:
    """URL slug: lowercase, alphanumerics and single hyphens, capped length."""
    slug = re.sub(r"[^a-z0-9\s-]", "", (title or "").lower())
    slug = re.sub(r"\s+", "-", slug.strip())
    slug = re.sub(r"-+", "-", slug)
    return slug[:max_len].strip("-")


def ensure_heading_ids(html: str) -> str:
    """Give every h2/h3 without an ``id`` a unique slug id; existing ids are kept."""
    used: Set[str] = {h.id for h in extract_headings(html) if h.id}

    def _add_id(m: "re.Match[str]") -> str:
        level, attrs, inner = m.group(1), m.group(2) or "", m.group(3)
        if level not in ("2", "3") or _ID_ATTR_RE.search(attrs):
            return m.group(0)
        base = generate_slug(strip_tags(inner)) or f"section-{level}"
        candidate = base
        n = 2
        while candidate in used:
            candidate = f"{base}-{n}"
            n += 1
        used.add(candidate)
        return f'<h{level}{attrs} id="{candidate}">{inner}</h{level}>'

    return _HEADING_RE.sub(_add_id, html or "")


_BULLET_RE = re.compile(r"^[-*•]\s+")
_NUMBERED_RE = re.compile(r"^\d+[.)]\s+")


def _list_block(tag: str, segment: str, marker: "re.Pattern[str]") -> str:
    items = [i for i in re.split(r"[\n\r]+", segment) if i.strip()]
    lis = "\n".join("<li>" + marker.sub("", i.strip()).strip() + "</li>" for i in items)
    return f"<{tag}>\n{lis}\n</{tag}>"


def ensure_proper_html_formatting(content: str) -> str:
    """Normalise provider output into block-level HTML.

    Well-formed content (paragraphs and h2/h3 present) only gets newlines
    after closing block tags.  Plain or markdown-ish text is split on blank
    lines and each segment wrapped as a list, short heading, or paragraph.
    """
    if not content:
        return content

    has_paragraphs = re.search(r"<p[^>]*>", content, re.IGNORECASE)
    has_headings = re.search(r"<h[23][^>]*>", content, re.IGNORECASE)
    if has_paragraphs and has_headings:
        fixed = content
        for tag in ("h2", "h3", "p", "ul", "ol"):
            fixed = re.sub(rf"(</{tag}>)(?!\s*<)", r"\1\n\n", fixed, flags=re.IGNORECASE)
        return fixed

    logger.warning("Content missing block HTML structure; rebuilding paragraphs")
    segments = re.split(r"\n\s*\n|<br\s*/?>\s*<br\s*/?>", content, flags=re.IGNORECASE)
    out: List[str] = []
    for segment in segments:
        segment = segment.strip()
        if not segment:
            continue
        if re.match(r"^<(h[1-6]|p|ul|ol|div|table|blockquote)", segment, re.IGNORECASE):
            out.append(segment)
        elif _BULLET_RE.match(segment):
            out.append(_list_block("ul", segment, _BULLET_RE))
        elif _NUMBERED_RE.match(segment):
            out.append(_list_block("ol", segment, _NUMBERED_RE))
        elif len(segment) < 100 and not segment.endswith((".", "?", "!")):
            out.append(f"<h3>{segment.replace('**', '').strip()}</h3>")
        else:
            out.append(f"<p>{segment}</p>")
    return "\n\n".join(out)


def truncate(text: str, max_len: int = 200) -> str:
    """Truncate text for logging."""
    if len(text) <= max_len:
        return text
    return text[:max_len] + "..."
