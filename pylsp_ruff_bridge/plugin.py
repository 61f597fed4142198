import logging
from typing import Dict, List

from lsprotocol.types import CodeActionContext
from pylsp import hookimpl
from pylsp.config.config import Config
from pylsp.workspace import Document, Workspace

from pylsp_ruff_bridge.actions import aggregate_code_actions, create_fix_all_code_action
from pylsp_ruff_bridge.diagnostics import (
    DiagnosticClassifier,
    from_lsp_diagnostic,
    get_diagnostics,
    to_lsp_diagnostic,
)
from pylsp_ruff_bridge.linter import RuffLinter
from pylsp_ruff_bridge.settings import (
    ERROR_CODES,
    UNUSED_CODES,
    PluginSettings,
    get_converter,
)

log = logging.getLogger(__name__)
converter = get_converter()

PLUGIN_NAME = "ruff_bridge"


@hookimpl
def pylsp_settings():
    log.debug("Initializing pylsp_ruff_bridge")
    # This plugin disables some enabled-by-default plugins that duplicate Ruff
    # functionality
    settings = {
        "plugins": {
            PLUGIN_NAME: PluginSettings(),
            "pyflakes": {"enabled": False},
            "mccabe": {"enabled": False},
            "pycodestyle": {"enabled": False},
        }
    }
    return converter.unstructure(settings)


@hookimpl
def pylsp_lint(workspace: Workspace, document: Document) -> List[Dict]:
    """
    Register ruff as the linter.

    Parameters
    ----------
    workspace : pylsp.workspace.Workspace
        Current workspace.
    document : pylsp.workspace.Document
        Document to apply ruff on.

    Returns
    -------
    List of dicts containing the diagnostics.
    """
    settings = load_settings(workspace, document.path)
    diagnostics = get_diagnostics(
        linter=RuffLinter(settings.executable),
        classifier=load_classifier(settings),
        document_path=document.path,
        document_source=document.source,
    )
    return converter.unstructure([to_lsp_diagnostic(d) for d in diagnostics])


@hookimpl
def pylsp_code_actions(
    config: Config,
    workspace: Workspace,
    document: Document,
    range: Dict,
    context: Dict,
) -> List[Dict]:
    """
    Provide code actions through ruff.

    Parameters
    ----------
    config : pylsp.config.config.Config
        Current workspace.
    workspace : pylsp.workspace.Workspace
        Current workspace.
    document : pylsp.workspace.Document
        Document to apply ruff on.
    range : Dict
        Range argument given by pylsp. Not used here.
    context : Dict
        CodeActionContext given as dict.

    Returns
    -------
    List of dicts containing the code actions.
    """
    log.debug(f"textDocument/codeAction: {document} {range} {context}")

    _context = converter.structure(context, CodeActionContext)
    diagnostics = [from_lsp_diagnostic(d) for d in _context.diagnostics]

    code_actions = aggregate_code_actions(document.uri, diagnostics)

    # Fix all is only offered for documents open in the editor
    open_document = workspace.get_maybe_document(document.uri)
    if open_document is not None:
        settings = load_settings(workspace=workspace, document_path=document.path)
        fix_all = create_fix_all_code_action(
            document_uri=document.uri,
            document_path=document.path,
            document_source=open_document.source,
            linter=RuffLinter(settings.executable),
        )
        if fix_all is not None:
            code_actions.append(fix_all)

    return converter.unstructure(code_actions)


def load_settings(workspace: Workspace, document_path: str) -> PluginSettings:
    """
    Load the plugin settings for a document.

    Parameters
    ----------
    workspace : pylsp.workspace.Workspace
        Current workspace.
    document_path : str
        Path to the document to apply ruff on.

    Returns
    -------
    PluginSettings read via lsp.
    """
    config = workspace._config
    _plugin_settings = config.plugin_settings(PLUGIN_NAME, document_path=document_path)
    return converter.structure(_plugin_settings, PluginSettings)


def load_classifier(settings: PluginSettings) -> DiagnosticClassifier:
    """
    Build the classifier for the configured error and unused codes.

    Unset code lists fall back to the defaults. A code configured as both is
    classified as an error.
    """
    error_codes = set(
        ERROR_CODES if settings.error_codes is None else settings.error_codes
    )
    unused_codes = set(
        UNUSED_CODES if settings.unused_codes is None else settings.unused_codes
    )
    overlap = error_codes & unused_codes
    if overlap:
        log.warning(
            f"Codes {sorted(overlap)} are configured as both errors and unused "
            "code, treating them as errors."
        )
        unused_codes -= overlap
    return DiagnosticClassifier.from_code_sets(error_codes, unused_codes)
