"""
Content hasher for diagram cache keys.

Keys are content-addressed: the same source text always yields the same
key, in any process, at any time. Source is hashed as exact UTF-8 bytes,
with no whitespace or case normalization.
"""

import hashlib

from config.constants import DIAGRAM_CACHE_NAMESPACE, DIAGRAM_KEY_HASH_LENGTH


def compute_diagram_key(source_code: str, namespace: str = DIAGRAM_CACHE_NAMESPACE) -> str:
    """
    Generate a stable cache key for a diagram.

    Args:
        source_code: Diagram source exactly as written inside the fence
        namespace: Key prefix identifying the diagram language

    Returns:
        Key of the form ``<namespace>-<8 hex chars>``

    Examples:
        >>> compute_diagram_key("graph TD\\nA-->B") == compute_diagram_key("graph TD\\nA-->B")
        True
        >>> compute_diagram_key("graph TD\\nA-->B").startswith("mermaid-")
        True
    """
    # md5 keeps keys compatible with caches persisted by earlier deployments
    digest = hashlib.md5(source_code.encode('utf-8'), usedforsecurity=False).hexdigest()
    return f"{namespace}-{digest[:DIAGRAM_KEY_HASH_LENGTH]}"


def diagram_label(source_code: str) -> str:
    """Human-readable label derived from the diagram's opening keyword."""
    first_line = ""
    for line in source_code.splitlines():
        if line.strip():
            first_line = line.strip().lower()
            break

    if first_line.startswith(('graph', 'flowchart')):
        return "Flowchart Diagram"
    if first_line.startswith('sequencediagram'):
        return "Sequence Diagram"
    if first_line.startswith('classdiagram'):
        return "Class Diagram"
    if first_line.startswith('statediagram'):
        return "State Diagram"
    if first_line.startswith('erdiagram'):
        return "ER Diagram"
    if first_line.startswith('gantt'):
        return "Gantt Chart"
    if first_line.startswith('pie'):
        return "Pie Chart"
    return "Diagram"
