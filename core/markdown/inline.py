"""
Inline markdown tokenizer.

Turns emphasis, inline code and links into InlineRun spans so that
assemblers never have to look at raw markup.
"""

import re
from typing import List

from .blocks import InlineRun


_INLINE_PATTERN = re.compile(
    r'(?P<code>`(?P<code_text>[^`]+)`)'
    r'|(?P<image>!\[(?P<image_alt>[^\]]*)\]\((?P<image_url>[^)\s]+)\))'
    r'|(?P<link>\[(?P<link_text>[^\]]+)\]\((?P<link_url>[^)\s]+)(?:\s+"[^"]*")?\))'
    r'|\*\*\*(?P<bold_italic>.+?)\*\*\*'
    r'|\*\*(?P<bold>.+?)\*\*'
    r'|__(?P<bold_u>.+?)__'
    r'|\*(?P<italic>[^*\s](?:[^*]*?[^*\s])?)\*'
    r'|(?<![A-Za-z0-9])_(?P<italic_u>[^_\s](?:[^_]*?[^_\s])?)_(?![A-Za-z0-9])'
)


def _tokenize(text: str, bold: bool, italic: bool) -> List[InlineRun]:
    runs: List[InlineRun] = []
    pos = 0

    for match in _INLINE_PATTERN.finditer(text):
        if match.start() > pos:
            runs.append(InlineRun(text[pos:match.start()], bold=bold, italic=italic))
        pos = match.end()

        if match.group('code') is not None:
            runs.append(InlineRun(match.group('code_text'), bold=bold, italic=italic, code=True))
        elif match.group('image') is not None:
            # Inline images have no run form; keep the alt text
            alt = match.group('image_alt')
            if alt:
                runs.append(InlineRun(alt, bold=bold, italic=italic))
        elif match.group('link') is not None:
            runs.append(InlineRun(
                match.group('link_text'), bold=bold, italic=italic,
                link=match.group('link_url'),
            ))
        elif match.group('bold_italic') is not None:
            runs.extend(_tokenize(match.group('bold_italic'), True, True))
        elif match.group('bold') is not None:
            runs.extend(_tokenize(match.group('bold'), True, italic))
        elif match.group('bold_u') is not None:
            runs.extend(_tokenize(match.group('bold_u'), True, italic))
        elif match.group('italic') is not None:
            runs.extend(_tokenize(match.group('italic'), bold, True))
        else:
            runs.extend(_tokenize(match.group('italic_u'), bold, True))

    if pos < len(text):
        runs.append(InlineRun(text[pos:], bold=bold, italic=italic))

    return runs


def _merge_runs(runs: List[InlineRun]) -> List[InlineRun]:
    merged: List[InlineRun] = []
    for run in runs:
        if not run.text:
            continue
        if merged and merged[-1].same_style(run):
            merged[-1] = InlineRun(
                merged[-1].text + run.text,
                bold=run.bold, italic=run.italic, code=run.code, link=run.link,
            )
        else:
            merged.append(run)
    return merged


def tokenize_inline(text: str) -> List[InlineRun]:
    """
    Split inline markdown into styled runs.

    Examples:
        >>> [r.text for r in tokenize_inline("a **b** c")]
        ['a ', 'b', ' c']
        >>> tokenize_inline("`x`")[0].code
        True
    """
    if not text:
        return []
    return _merge_runs(_tokenize(text, False, False))


def strip_markdown(text: str) -> str:
    """Remove inline markup, keeping the visible text."""
    text = re.sub(r'!\[[^\]]*\]\([^)]*\)', '', text)
    text = re.sub(r'\*\*\*(.+?)\*\*\*', r'\1', text)
    text = re.sub(r'\*\*(.+?)\*\*', r'\1', text)
    text = re.sub(r'\*(.+?)\*', r'\1', text)
    text = re.sub(r'__(.+?)__', r'\1', text)
    text = re.sub(r'(?<![A-Za-z0-9])_(.+?)_(?![A-Za-z0-9])', r'\1', text)
    text = re.sub(r'`(.+?)`', r'\1', text)
    text = re.sub(r'\[(.+?)\]\(.+?\)', r'\1', text)
    return text.strip()
