import logging
import re
from typing import List, Optional, Sequence

from lsprotocol.types import (
    CodeAction,
    CodeActionKind,
    Position,
    Range,
    TextEdit,
    WorkspaceEdit,
)

from pylsp_ruff_bridge.diagnostics import (
    DIAGNOSTIC_SOURCE,
    LintDiagnostic,
    RuffAction,
    convert_edit,
)
from pylsp_ruff_bridge.linter import RuffLinter

log = logging.getLogger(__name__)

FIX_ALL_TITLE = "Fix all automatically fixable errors"

IMPORT_SORT_REGEX = re.compile(r"I[0-9]{3}")


def whole_document_range(document_source: str) -> Range:
    """Range from the start of the document to past its last line."""
    return Range(
        start=Position(line=0, character=0),
        end=Position(line=len(document_source.splitlines(True)), character=0),
    )


def is_import_sort_code(code: Optional[str]) -> bool:
    return code is not None and IMPORT_SORT_REGEX.fullmatch(code) is not None


def create_fix_code_action(document_uri: str, action: RuffAction) -> CodeAction:
    if is_import_sort_code(action.code):
        kind = CodeActionKind.SourceOrganizeImports
    else:
        kind = CodeActionKind.QuickFix

    text_edits = [convert_edit(edit) for edit in action.payload.edits]
    workspace_edit = WorkspaceEdit(changes={document_uri: text_edits})
    return CodeAction(
        title=action.title,
        kind=kind,
        edit=workspace_edit,
    )


def aggregate_code_actions(
    document_uri: str,
    diagnostics: Sequence[LintDiagnostic],
) -> List[CodeAction]:
    """
    Create the quick fix and organize imports actions for ruff diagnostics.

    Parameters
    ----------
    document_uri : str
        URI of the document the diagnostics belong to.
    diagnostics : Sequence[LintDiagnostic]
        Diagnostics built from ruff checks.

    Returns
    -------
    One code action per diagnostic with a ruff fix, in diagnostic order.
    """
    code_actions = []
    for diagnostic in diagnostics:
        action = diagnostic.action
        if action is None or action.source != DIAGNOSTIC_SOURCE:
            continue
        code_actions.append(create_fix_code_action(document_uri, action))
    return code_actions


def create_fix_all_code_action(
    document_uri: str,
    document_path: str,
    document_source: str,
    linter: RuffLinter,
) -> Optional[CodeAction]:
    """
    Create a code action replacing the document with ruff's autofixed version.

    Parameters
    ----------
    document_uri : str
        URI of the open document.
    document_path : str
        Path of the document, passed to ruff.
    document_source : str
        Current contents of the open document.
    linter : RuffLinter
        Linter used to run ruff in fix-only mode.

    Returns
    -------
    The fix-all code action, or None if ruff failed or had nothing to fix.
    """
    result = linter.fix_only(document_path, document_source)
    if not result.ok:
        log.error(f"Skipping fix all for '{document_path}': {result.error}")
        return None

    new_text = result.stdout
    # Avoid applying empty text edit
    if new_text == document_source:
        return None

    text_edit = TextEdit(range=whole_document_range(document_source), new_text=new_text)
    workspace_edit = WorkspaceEdit(changes={document_uri: [text_edit]})
    return CodeAction(
        title=FIX_ALL_TITLE,
        kind=CodeActionKind.SourceFixAll,
        edit=workspace_edit,
    )
