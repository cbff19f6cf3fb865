"""
Mermaid diagram validation.

A small static rule set run before any render attempt. Rule failures are
errors and short-circuit rendering; style observations are warnings only.
"""

import re
from enum import Enum
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from config.logging_config import get_logger
from core.markdown.walker import extract_diagrams

from .errors import DiagramValidationError

logger = get_logger(__name__)


VALID_DIAGRAM_TYPES = (
    'graph td', 'graph lr', 'graph bt', 'graph rl', 'graph tb',
    'flowchart td', 'flowchart lr', 'flowchart bt', 'flowchart rl', 'flowchart tb',
    'sequencediagram', 'classdiagram', 'statediagram', 'erdiagram',
    'gantt', 'pie', 'journey', 'gitgraph', 'mindmap', 'timeline',
)

# Renderers in use reject C4 and architecture-beta vocabularies
DEFAULT_FORBIDDEN_KEYWORDS = (
    'cloud', 'server', 'database', 'compute', 'auth',
    'c4context', 'c4container', 'c4component',
)

LINK_TOKENS = ('-->', '->', '---', '-.->', '==>', '~~>')


class ValidationRule(Enum):
    """Rules a diagram can violate."""
    EMPTY = "empty"
    UNKNOWN_DIAGRAM_TYPE = "unknown_diagram_type"
    FORBIDDEN_KEYWORD = "forbidden_keyword"
    UNBALANCED_BRACKETS = "unbalanced_brackets"
    UNBALANCED_PARENS = "unbalanced_parens"
    UNBALANCED_BRACES = "unbalanced_braces"


@dataclass
class ValidationResult:
    """Outcome of validating one diagram."""
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    violated_rules: List[ValidationRule] = field(default_factory=list)

    @property
    def primary_rule(self) -> Optional[ValidationRule]:
        return self.violated_rules[0] if self.violated_rules else None

    def raise_for_errors(self):
        """Raise DiagramValidationError for the first violated rule."""
        if not self.is_valid:
            raise DiagramValidationError("; ".join(self.errors), rule=self.primary_rule)

    def to_dict(self) -> dict:
        return {
            "is_valid": self.is_valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "violated_rules": [rule.value for rule in self.violated_rules],
        }


@dataclass
class DiagramValidation:
    """Validation of one diagram inside a document."""
    index: int
    source_code: str
    result: ValidationResult


@dataclass
class DocumentValidation:
    """Validation of every diagram in a document."""
    results: List[DiagramValidation] = field(default_factory=list)

    @property
    def all_valid(self) -> bool:
        return all(item.result.is_valid for item in self.results)


class MermaidValidator:
    """
    Static checks for Mermaid source.

    Usage:
        >>> MermaidValidator().validate("graph TD\\nA-->B").is_valid
        True
        >>> MermaidValidator().validate("").violated_rules[0].value
        'empty'
    """

    def __init__(self, forbidden_keywords: Optional[Iterable[str]] = None):
        keywords = list(DEFAULT_FORBIDDEN_KEYWORDS)
        if forbidden_keywords:
            keywords.extend(k.lower() for k in forbidden_keywords if k)
        self.forbidden_keywords = tuple(dict.fromkeys(keywords))
        self._forbidden_patterns = [
            (keyword, re.compile(rf'\b{re.escape(keyword)}\b', re.IGNORECASE))
            for keyword in self.forbidden_keywords
        ]

    def validate(self, source_code: str) -> ValidationResult:
        """Run every rule and collect errors and warnings."""
        result = ValidationResult(is_valid=True)

        lines = [line.strip() for line in (source_code or "").split("\n") if line.strip()]
        if not lines:
            self._fail(result, ValidationRule.EMPTY, "Diagram is empty")
            return result

        first_line = lines[0].lower()
        if not first_line.startswith(VALID_DIAGRAM_TYPES):
            self._fail(
                result, ValidationRule.UNKNOWN_DIAGRAM_TYPE,
                f'Invalid or missing diagram type. First line: "{lines[0]}"'
            )
            result.warnings.append(
                'Diagram should start with a valid type like "graph TD", '
                '"flowchart LR" or "sequenceDiagram"'
            )

        for keyword, pattern in self._forbidden_patterns:
            if pattern.search(source_code):
                self._fail(
                    result, ValidationRule.FORBIDDEN_KEYWORD,
                    f'Forbidden keyword found: "{keyword}". Use basic Mermaid syntax only.'
                )

        for opener, closer, rule, name in (
            ('[', ']', ValidationRule.UNBALANCED_BRACKETS, 'brackets'),
            ('(', ')', ValidationRule.UNBALANCED_PARENS, 'parentheses'),
            ('{', '}', ValidationRule.UNBALANCED_BRACES, 'braces'),
        ):
            opened = source_code.count(opener)
            closed = source_code.count(closer)
            if opened != closed:
                self._fail(result, rule, f"Unbalanced {name}: {opened} open, {closed} close")

        if first_line.startswith(('graph', 'flowchart')) and len(lines) > 1:
            if not any(token in source_code for token in LINK_TOKENS):
                result.warnings.append('Graph/flowchart diagram has no arrows/connections')

        return result

    def validate_all_diagrams(self, markdown_text: str) -> DocumentValidation:
        """Validate every diagram fence in a markdown document."""
        report = DocumentValidation()
        for diagram in extract_diagrams(markdown_text):
            report.results.append(DiagramValidation(
                index=diagram.ordinal_index,
                source_code=diagram.source_code,
                result=self.validate(diagram.source_code),
            ))
        if not report.all_valid:
            invalid = [item.index for item in report.results if not item.result.is_valid]
            logger.info(f"Invalid diagrams at indices {invalid}")
        return report

    @staticmethod
    def _fail(result: ValidationResult, rule: ValidationRule, message: str):
        result.is_valid = False
        result.errors.append(message)
        if rule not in result.violated_rules:
            result.violated_rules.append(rule)
