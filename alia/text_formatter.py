"""
Post-processing of the model's free-text answer.

split_sections() is a best-effort heuristic over natural-language output, not
a grammar: the prompt asks the model for "1. ANÁLISE TÉCNICA" and
"2. RECOMENDAÇÕES" headings, but nothing guarantees they come back verbatim.
Callers get a tagged result so the fallback path is visible.

Formatting goes through one token stream (tokenize) with a renderer per
target: HTML for the result screen, plain text for the PDF layout engine.
"""
from __future__ import annotations

import enum
import re
from dataclasses import dataclass
from typing import List

from markupsafe import Markup, escape

FALLBACK_RECOMMENDATIONS = "Consulte um médico especialista para orientações específicas."

# Markdown decoration the model likes to put around headings is part of the marker.
SECTION_MARKER_RE = re.compile(
    r"[*#]*\s*(?:2\.\s*RECOMENDAÇÕES|RECOMENDAÇÕES)\s*:?\**",
    re.IGNORECASE,
)
ANALYSIS_LABEL_RE = re.compile(r"[*#]*\s*1\.\s*ANÁLISE TÉCNICA\s*:?\**", re.IGNORECASE)


class SplitKind(enum.Enum):
    FOUND = "found"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class SectionSplit:
    kind: SplitKind
    analysis: str
    recommendations: str

    @property
    def found(self) -> bool:
        return self.kind == SplitKind.FOUND


def split_sections(raw_text: str) -> SectionSplit:
    """Split a model answer into (analysis, recommendations).

    The split happens at the first marker only. Without a marker the whole
    text is the analysis and the recommendations fall back to a fixed advice
    string.
    """
    text = (raw_text or "").replace("\r\n", "\n")
    parts = SECTION_MARKER_RE.split(text, maxsplit=1)
    if len(parts) == 1:
        return SectionSplit(SplitKind.FALLBACK, text.strip(), FALLBACK_RECOMMENDATIONS)

    before, after = parts
    analysis = ANALYSIS_LABEL_RE.sub("", before, count=1).strip() or text.strip()
    recommendations = after.strip() or FALLBACK_RECOMMENDATIONS
    return SectionSplit(SplitKind.FOUND, analysis, recommendations)


# ============ Token stream ============

class TokenKind(enum.Enum):
    TEXT = "text"
    BOLD = "bold"
    EMPHASIS = "emphasis"
    LINE_BREAK = "line_break"
    NUMBERED_ITEM = "numbered_item"
    BULLET_ITEM = "bullet_item"


@dataclass(frozen=True)
class Token:
    kind: TokenKind
    value: str = ""


INLINE_RE = re.compile(r"\*\*(.+?)\*\*|\*(.+?)\*")
NUMBERED_RE = re.compile(r"^\s*(\d+\.)\s+")
BULLET_RE = re.compile(r"^\s*-\s+")


def _inline_tokens(line: str) -> List[Token]:
    tokens: List[Token] = []
    pos = 0
    for m in INLINE_RE.finditer(line):
        if m.start() > pos:
            tokens.append(Token(TokenKind.TEXT, line[pos:m.start()]))
        if m.group(1) is not None:
            tokens.append(Token(TokenKind.BOLD, m.group(1)))
        else:
            tokens.append(Token(TokenKind.EMPHASIS, m.group(2)))
        pos = m.end()
    if pos < len(line):
        tokens.append(Token(TokenKind.TEXT, line[pos:]))
    return tokens


def tokenize(text: str) -> List[Token]:
    """Lightweight markup to tokens. List markers only count at line start."""
    tokens: List[Token] = []
    lines = (text or "").replace("\r\n", "\n").split("\n")
    for index, line in enumerate(lines):
        if index:
            tokens.append(Token(TokenKind.LINE_BREAK))
        m = NUMBERED_RE.match(line)
        if m:
            tokens.append(Token(TokenKind.NUMBERED_ITEM, m.group(1)))
            line = line[m.end():]
        else:
            m = BULLET_RE.match(line)
            if m:
                tokens.append(Token(TokenKind.BULLET_ITEM))
                line = line[m.end():]
        tokens.extend(_inline_tokens(line))
    return tokens


def render_html(tokens: List[Token]) -> Markup:
    # Every fragment is escaped before it is wrapped; Markup % escapes its arguments.
    parts = []
    for token in tokens:
        if token.kind == TokenKind.TEXT:
            parts.append(escape(token.value))
        elif token.kind == TokenKind.BOLD:
            parts.append(Markup("<strong>%s</strong>") % token.value)
        elif token.kind == TokenKind.EMPHASIS:
            parts.append(Markup("<em>%s</em>") % token.value)
        elif token.kind == TokenKind.LINE_BREAK:
            parts.append(Markup("<br>"))
        elif token.kind == TokenKind.NUMBERED_ITEM:
            parts.append(Markup("<strong>%s</strong> ") % token.value)
        elif token.kind == TokenKind.BULLET_ITEM:
            parts.append(Markup("&bull; "))
    return Markup("").join(parts)


def render_plain(tokens: List[Token]) -> str:
    # Asterisks carry no meaning in plain output, stray ones included.
    parts = []
    for token in tokens:
        if token.kind in (TokenKind.TEXT, TokenKind.BOLD, TokenKind.EMPHASIS):
            parts.append(token.value.replace("*", ""))
        elif token.kind == TokenKind.LINE_BREAK:
            parts.append("\n")
        elif token.kind == TokenKind.NUMBERED_ITEM:
            parts.append(f"{token.value} ")
        elif token.kind == TokenKind.BULLET_ITEM:
            parts.append("- ")
    return re.sub(r"\n{2,}", "\n", "".join(parts)).strip()


def format_for_display(text: str) -> Markup:
    return render_html(tokenize(text))


def format_for_pdf(text: str) -> str:
    return render_plain(tokenize(text))
