"""
Markdown rewriter: swaps resolved diagram fences for image references.

Fences are located with the same rules as the block walker so that the
key computed here matches the key the pipeline resolved.
"""

from typing import Dict, List

from config.constants import DIAGRAM_FENCE_LANGUAGE, DIAGRAM_CACHE_NAMESPACE
from core.diagrams.hasher import compute_diagram_key, diagram_label

from .walker import FENCE_OPEN, closes_fence


def replace_diagrams_with_images(
    markdown_text: str,
    url_by_key: Dict[str, str],
    diagram_language: str = DIAGRAM_FENCE_LANGUAGE,
    namespace: str = DIAGRAM_CACHE_NAMESPACE,
) -> str:
    """
    Replace every resolved diagram fence with ``![label](url)``.

    Fences whose key is not in ``url_by_key`` are left untouched, as are
    unterminated fences.
    """
    lines = markdown_text.splitlines()
    output: List[str] = []
    i = 0

    while i < len(lines):
        fence = FENCE_OPEN.match(lines[i].strip())
        if not fence:
            output.append(lines[i])
            i += 1
            continue

        marker = fence.group(1)
        end = i + 1
        while end < len(lines) and not closes_fence(lines[end].strip(), marker):
            end += 1

        if end >= len(lines):
            output.extend(lines[i:])
            break

        if fence.group(2).lower() == diagram_language.lower():
            source = "\n".join(lines[i + 1:end])
            url = url_by_key.get(compute_diagram_key(source, namespace))
            if url:
                output.append(f"![{diagram_label(source)}]({url})")
                i = end + 1
                continue

        output.extend(lines[i:end + 1])
        i = end + 1

    result = "\n".join(output)
    if markdown_text.endswith("\n"):
        result += "\n"
    return result
