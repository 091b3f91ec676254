# content_analysis.py - Structural analysis of rendered Markdown articles
# This file turns generated Markdown into sections, blocks and links for validation and post-processing.

import math
import re
from typing import Dict, List, Optional
from urllib.parse import urlparse

import markdown as md_lib
from bs4 import BeautifulSoup, Tag
from pydantic import BaseModel, Field
from slugify import slugify

from .models import ContentMetadata, HeadingInfo, LinkInfo

WORDS_PER_MINUTE = 200
EXCERPT_LENGTH = 160

CONCLUSION_PATTERN = re.compile(
    r"conclusion|final (thoughts|verdict|words)|wrapping up|summary|key takeaways|bottom line",
    re.IGNORECASE,
)
IGNORED_SCHEMES = {"mailto", "tel", "javascript", "data"}

class Link(BaseModel):
    url: str
    text: str
    internal: bool

class Block(BaseModel):
    kind: str  # paragraph | list | table | code | quote | image
    text: str = ""
    word_count: int = 0
    list_items: int = 0
    links: List[Link] = Field(default_factory=list)

class Section(BaseModel):
    heading: Optional[str] = None  # None for the introduction
    subheadings: List[str] = Field(default_factory=list)
    blocks: List[Block] = Field(default_factory=list)

    @property
    def paragraphs(self) -> List[Block]:
        return [b for b in self.blocks if b.kind == "paragraph"]

    @property
    def links(self) -> List[Link]:
        return [link for b in self.blocks for link in b.links]

    @property
    def word_count(self) -> int:
        return sum(b.word_count for b in self.blocks)

    @property
    def list_items(self) -> int:
        return sum(b.list_items for b in self.blocks)

class DocumentStructure(BaseModel):
    title: Optional[str] = None
    introduction: Section = Field(default_factory=Section)
    sections: List[Section] = Field(default_factory=list)
    headings: List[HeadingInfo] = Field(default_factory=list)
    tables: int = 0
    word_count: int = 0
    plain_text: str = ""

    @property
    def links(self) -> List[Link]:
        found = list(self.introduction.links)
        for section in self.sections:
            found.extend(section.links)
        return found

    @property
    def conclusion(self) -> Optional[Section]:
        for section in reversed(self.sections):
            if section.heading and CONCLUSION_PATTERN.search(section.heading):
                return section
        return self.sections[-1] if self.sections else None

def render_html(content: str) -> str:
    return md_lib.markdown(content or "", extensions=["tables", "fenced_code"])

def site_host(site_url: Optional[str]) -> Optional[str]:
    if not site_url:
        return None
    parsed = urlparse(site_url if "//" in site_url else f"//{site_url}")
    host = (parsed.hostname or "").lower()
    return host[4:] if host.startswith("www.") else host or None

def classify_link(url: str, host: Optional[str]) -> Optional[bool]:
    """True for internal, False for external, None for links that are not counted."""
    url = (url or "").strip()
    if not url or url.startswith("#"):
        return None
    parsed = urlparse(url)
    if parsed.scheme in IGNORED_SCHEMES:
        return None
    if not parsed.netloc:
        return True
    link_host = (parsed.hostname or "").lower()
    if link_host.startswith("www."):
        link_host = link_host[4:]
    return host is not None and link_host == host

def is_relative(url: str) -> bool:
    parsed = urlparse((url or "").strip())
    return not parsed.netloc and not parsed.scheme and not url.startswith("#")

def count_words(text: str) -> int:
    return len(text.split())

def _block_links(element: Tag, host: Optional[str]) -> List[Link]:
    links = []
    for anchor in element.find_all("a", href=True):
        internal = classify_link(anchor["href"], host)
        if internal is None:
            continue
        links.append(Link(url=anchor["href"].strip(), text=anchor.get_text(" ", strip=True),
                          internal=internal))
    return links

def _to_block(element: Tag, host: Optional[str]) -> Optional[Block]:
    name = element.name
    text = element.get_text(" ", strip=True)
    if name == "p":
        if not text and element.find("img"):
            return Block(kind="image")
        if not text:
            return None
        kind = "paragraph"
    elif name in ("ul", "ol"):
        kind = "list"
    elif name == "table":
        kind = "table"
    elif name == "pre":
        return Block(kind="code", text=text)
    elif name == "blockquote":
        kind = "quote"
    elif name == "div":
        if element.find("table"):
            kind = "table"
        elif not text:
            return None
        else:
            kind = "paragraph"
    else:
        return None
    return Block(
        kind=kind,
        text=text,
        word_count=count_words(text),
        list_items=len(element.find_all("li")) if kind == "list" else 0,
        links=_block_links(element, host),
    )

def analyze(content: str, site_url: Optional[str] = None) -> DocumentStructure:
    """Split an article into its introduction and H2 sections."""
    soup = BeautifulSoup(render_html(content), "html.parser")
    host = site_host(site_url)
    doc = DocumentStructure()
    current = doc.introduction
    used_ids: Dict[str, int] = {}

    for element in soup.children:
        if not isinstance(element, Tag):
            continue
        if re.fullmatch(r"h[1-6]", element.name):
            level = int(element.name[1])
            text = element.get_text(" ", strip=True)
            anchor = slugify(text) or "section"
            used_ids[anchor] = used_ids.get(anchor, 0) + 1
            if used_ids[anchor] > 1:
                anchor = f"{anchor}-{used_ids[anchor]}"
            doc.headings.append(HeadingInfo(level=level, text=text, id=anchor))
            if level == 1 and doc.title is None and not doc.sections:
                doc.title = text
            elif level == 2:
                current = Section(heading=text)
                doc.sections.append(current)
            elif level > 2:
                current.subheadings.append(text)
            continue
        if element.name == "hr":
            continue
        block = _to_block(element, host)
        if block is None:
            continue
        if block.kind == "table":
            doc.tables += 1
        current.blocks.append(block)

    doc.plain_text = soup.get_text(" ", strip=True)
    doc.word_count = count_words(doc.plain_text)
    return doc

def extract_excerpt(content: str, max_length: int = EXCERPT_LENGTH) -> str:
    """First two sentences of the article's prose, trimmed to max_length."""
    doc = analyze(content)
    prose = " ".join(
        b.text for s in [doc.introduction, *doc.sections] for b in s.blocks if b.kind == "paragraph"
    ).strip()
    if not prose:
        return ""
    first = ". ".join(re.split(r"\.\s+", prose)[:2])
    if len(first) <= max_length:
        return first if first.endswith((".", "!", "?")) else first + "."
    return prose[: max_length - 3].rstrip() + "..."

def reading_time(word_count: int) -> int:
    return math.ceil(word_count / WORDS_PER_MINUTE) if word_count else 0

def readability_score(text: str) -> float:
    """Flesch reading ease clamped to 0-100."""
    words = re.findall(r"\b\w+\b", (text or "").lower())
    if not words:
        return 0.0
    sentences = [s for s in re.split(r"[.!?]+", text) if s.strip()] or [text]
    syllables = 0
    for word in words:
        groups = re.findall(r"[aeiouy]+", re.sub(r"e$", "", word))
        syllables += len(groups) or 1
    score = 206.835 - 1.015 * (len(words) / len(sentences)) - 84.6 * (syllables / len(words))
    return round(max(0.0, min(100.0, score)), 1)

def content_metadata(content: str, site_url: Optional[str] = None) -> ContentMetadata:
    doc = analyze(content, site_url)
    return ContentMetadata(
        word_count=doc.word_count,
        reading_time_minutes=reading_time(doc.word_count),
        headings=doc.headings,
        links=[
            LinkInfo(url=link.url, text=link.text, type="internal" if link.internal else "external")
            for link in doc.links
        ],
        excerpt=extract_excerpt(content),
    )
