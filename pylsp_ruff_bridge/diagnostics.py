import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Mapping, Optional

from cattrs.errors import BaseValidationError
from lsprotocol.types import (
    CodeDescription,
    Diagnostic,
    DiagnosticSeverity,
    DiagnosticTag,
    Position,
    Range,
    TextEdit,
)

from pylsp_ruff_bridge.linter import RuffError, RuffLinter, parse_checks
from pylsp_ruff_bridge.ruff import Check, Edit, Fix, Location
from pylsp_ruff_bridge.settings import get_converter

log = logging.getLogger(__name__)
converter = get_converter()

DIAGNOSTIC_SOURCE = "ruff"


class DiagnosticCategory(str, Enum):
    Error = "error"
    UnusedCode = "unused-code"
    Warning = "warning"


CATEGORY_SEVERITIES = {
    DiagnosticCategory.Error: DiagnosticSeverity.Error,
    DiagnosticCategory.UnusedCode: DiagnosticSeverity.Hint,
    DiagnosticCategory.Warning: DiagnosticSeverity.Warning,
}


@dataclass(frozen=True)
class RuffAction:
    """A ruff fix attached to a diagnostic, replayed on a code action request."""

    title: str
    code: Optional[str]
    payload: Fix
    source: str = DIAGNOSTIC_SOURCE


@dataclass(frozen=True)
class LintDiagnostic:
    category: DiagnosticCategory
    message: str
    range: Range
    action: Optional[RuffAction] = None
    rule: Optional[str] = None
    url: Optional[str] = None


def convert_range(start: Location, end: Location) -> Range:
    """
    Convert a one-based ruff span to a zero-based LSP range.

    Positions below one are clamped to zero. Reversed spans are passed
    through as they are.
    """
    return Range(
        start=Position(
            line=max(start.row - 1, 0),
            character=max(start.column - 1, 0),
        ),
        end=Position(
            line=max(end.row - 1, 0),
            character=max(end.column - 1, 0),
        ),
    )


def convert_edit(edit: Edit) -> TextEdit:
    return TextEdit(
        range=convert_range(edit.location, edit.end_location),
        new_text=edit.content,
    )


class DiagnosticClassifier:
    """
    Map rule codes to a diagnostic category.

    Parameters
    ----------
    categories : Mapping[str, DiagnosticCategory]
        Rule code to category. Codes that are not listed are warnings.
    """

    def __init__(self, categories: Mapping[str, DiagnosticCategory]):
        self._categories = dict(categories)

    @classmethod
    def from_code_sets(
        cls,
        error_codes: Iterable[str],
        unused_codes: Iterable[str],
    ) -> "DiagnosticClassifier":
        """
        Build a classifier from the error and unused-code sets.

        Raises
        ------
        ValueError
            If a code is listed in both sets.
        """
        error_codes = set(error_codes)
        unused_codes = set(unused_codes)
        overlap = error_codes & unused_codes
        if overlap:
            raise ValueError(
                f"Codes can't be both errors and unused code: {sorted(overlap)}"
            )

        categories = {code: DiagnosticCategory.Error for code in error_codes}
        categories.update(
            {code: DiagnosticCategory.UnusedCode for code in unused_codes}
        )
        return cls(categories)

    def classify(self, code: Optional[str]) -> DiagnosticCategory:
        if code is None:
            return DiagnosticCategory.Warning
        return self._categories.get(code, DiagnosticCategory.Warning)


def build_diagnostic(
    check: Check, classifier: DiagnosticClassifier
) -> LintDiagnostic:
    """
    Create the internal diagnostic for a single ruff check.

    Parameters
    ----------
    check : Check
        Check as reported by ruff.
    classifier : DiagnosticClassifier
        Classifier for the check's rule code.

    Returns
    -------
    LintDiagnostic
    """
    action = None
    if check.fix is not None:
        action = RuffAction(
            title=check.fix.message or check.message,
            code=check.code,
            payload=check.fix,
        )

    return LintDiagnostic(
        category=classifier.classify(check.code),
        message=check.message,
        range=convert_range(check.location, check.end_location),
        action=action,
        rule=check.code,
        url=check.url,
    )


def get_diagnostics(
    linter: RuffLinter,
    classifier: DiagnosticClassifier,
    document_path: str,
    document_source: str,
) -> List[LintDiagnostic]:
    """
    Run ruff on a document and build its diagnostics.

    Any failure is logged and results in no diagnostics.
    """
    result = linter.check(document_path, document_source)
    if not result.ok:
        return []

    try:
        checks = parse_checks(result.stdout)
    except RuffError as e:
        log.error(f"Error reading ruff output for '{document_path}': {e}")
        return []

    return [build_diagnostic(check, classifier) for check in checks]


def to_lsp_diagnostic(diagnostic: LintDiagnostic) -> Diagnostic:
    tags = []
    if diagnostic.category == DiagnosticCategory.UnusedCode:
        tags = [DiagnosticTag.Unnecessary]

    code_description = None
    if diagnostic.url:
        code_description = CodeDescription(href=diagnostic.url)

    data = None
    if diagnostic.action is not None:
        data = converter.unstructure(diagnostic.action)

    return Diagnostic(
        source=DIAGNOSTIC_SOURCE,
        code=diagnostic.rule,
        code_description=code_description,
        range=diagnostic.range,
        message=diagnostic.message,
        severity=CATEGORY_SEVERITIES[diagnostic.category],
        tags=tags,
        data=data,
    )


def from_lsp_diagnostic(diagnostic: Diagnostic) -> LintDiagnostic:
    """
    Rebuild the internal diagnostic from one sent back by the client.

    Only diagnostics published by this plugin carry an action.
    """
    category = DiagnosticCategory.Warning
    if diagnostic.tags and DiagnosticTag.Unnecessary in diagnostic.tags:
        category = DiagnosticCategory.UnusedCode
    elif diagnostic.severity == DiagnosticSeverity.Error:
        category = DiagnosticCategory.Error

    action = None
    if diagnostic.source == DIAGNOSTIC_SOURCE and diagnostic.data:
        try:
            action = converter.structure(diagnostic.data, RuffAction)
        except (BaseValidationError, KeyError, TypeError, ValueError) as e:
            log.warning(f"Ignoring malformed ruff action {diagnostic.data}: {e}")

    rule = diagnostic.code if isinstance(diagnostic.code, str) else None
    url = diagnostic.code_description.href if diagnostic.code_description else None

    return LintDiagnostic(
        category=category,
        message=diagnostic.message,
        range=diagnostic.range,
        action=action,
        rule=rule,
        url=url,
    )
