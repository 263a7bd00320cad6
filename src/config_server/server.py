"""Configuration Language Server

Implements Language Server Protocol support for firmware configuration
headers: hover details for options, diagnostics for inactive options and
unbalanced conditionals, and completion of option names.
"""

import logging
from typing import List, Optional, Dict
from urllib.parse import unquote

from pygls.lsp.server import LanguageServer
from lsprotocol.types import (
    TEXT_DOCUMENT_COMPLETION,
    TEXT_DOCUMENT_HOVER,
    TEXT_DOCUMENT_DIAGNOSTIC,
    TEXT_DOCUMENT_DID_OPEN,
    TEXT_DOCUMENT_DID_CHANGE,
    TEXT_DOCUMENT_DID_CLOSE,
    CompletionItem,
    CompletionItemKind,
    CompletionList,
    CompletionOptions,
    CompletionParams,
    Hover,
    HoverParams,
    MarkupContent,
    MarkupKind,
    Position,
    Range,
    Diagnostic,
    DiagnosticOptions,
    DiagnosticSeverity,
    DiagnosticTag,
    DocumentDiagnosticParams,
    FullDocumentDiagnosticReport,
    DidOpenTextDocumentParams,
    DidChangeTextDocumentParams,
    DidCloseTextDocumentParams,
    TextDocumentSyncKind,
)

import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

try:
    from src.configschema.schema import ConfigSchema
    from src.configschema.records import ConfigOption
    from src.configschema.workspace import ADV_CONFIG_FILE, CONFIG_FILE, advanced_document
except ImportError:
    # Installed package context
    from configschema.schema import ConfigSchema
    from configschema.records import ConfigOption
    from configschema.workspace import ADV_CONFIG_FILE, CONFIG_FILE, advanced_document

logger = logging.getLogger(__name__)


DIRECTIVES = [
    ('define',  '#define NAME [value]', 'Define an option, enabled unless commented out'),
    ('undef',   '#undef NAME',          'Remove a previously defined option'),
    ('if',      '#if condition',        'Start a block that applies when the condition holds'),
    ('ifdef',   '#ifdef NAME',          'Start a block that applies when NAME is defined'),
    ('ifndef',  '#ifndef NAME',         'Start a block that applies when NAME is not defined'),
    ('elif',    '#elif condition',      'Alternative branch with its own condition'),
    ('else',    '#else',                'Alternative branch of the open block'),
    ('endif',   '#endif',               'Close the open block'),
]


class ConfigLanguageServer(LanguageServer):
    """Language Server for configuration headers."""

    def __init__(self):
        super().__init__("marlin-config-server", "0.1.0",
                         text_document_sync_kind=TextDocumentSyncKind.Full)

        # Document cache
        self.documents: Dict[str, str] = {}
        self.schemas: Dict[str, ConfigSchema] = {}

    # --- Schema cache ---------------------------------------------------

    def companion_uri(self, uri: str) -> Optional[str]:
        """URI of the open Configuration.h next to an advanced file."""
        head, _, name = uri.rpartition('/')
        if unquote(name) != ADV_CONFIG_FILE:
            return None
        companion = f"{head}/{CONFIG_FILE}"
        return companion if companion in self.documents else None

    def schema_for(self, uri: str) -> Optional[ConfigSchema]:
        """Parse (or fetch the cached parse of) an open document."""
        if uri not in self.documents:
            return None
        if uri not in self.schemas:
            text = self.documents[uri]
            companion = self.companion_uri(uri)
            if companion is not None:
                doc = advanced_document(self.documents[companion], '', text)
                self.schemas[uri] = ConfigSchema.from_text(doc['text'], doc['line_offset'])
            else:
                self.schemas[uri] = ConfigSchema.from_text(text)
            logger.debug(f"Parsed {uri}")
        return self.schemas[uri]

    def update_document(self, uri: str, text: Optional[str]) -> None:
        """Store (or drop, for None) a document and invalidate dependent parses."""
        if text is None:
            self.documents.pop(uri, None)
        else:
            self.documents[uri] = text
        self.schemas.pop(uri, None)
        head, _, name = uri.rpartition('/')
        if unquote(name) == CONFIG_FILE:
            self.schemas.pop(f"{head}/{ADV_CONFIG_FILE}", None)

    # --- Features -------------------------------------------------------

    def option_at(self, uri: str, line: int, word: str) -> Optional[ConfigOption]:
        """The record for *word*, preferring the occurrence on *line* (1-based)."""
        schema = self.schema_for(uri)
        if schema is None:
            return None
        records = [r for r in schema.records_named(word) if r.writable]
        for record in records:
            if record.line_start <= line <= record.line_end:
                return record
        return records[0] if records else None

    def collect_diagnostics(self, uri: str) -> List[Diagnostic]:
        """Diagnostics for an open document."""
        schema = self.schema_for(uri)
        if schema is None:
            return []
        lines = self.documents[uri].split('\n')

        def line_range(line: int) -> Range:
            index = min(max(line - 1, 0), max(len(lines) - 1, 0))
            return Range(start=Position(line=index, character=0),
                         end=Position(line=index, character=len(lines[index]) if lines else 0))

        items = []
        for warning in schema.warnings:
            items.append(Diagnostic(
                range=line_range(warning.line),
                message=warning.message,
                severity=DiagnosticSeverity.Warning,
                source="config-schema"
            ))

        for record in schema.records():
            if not record.writable:
                continue
            if record.error:
                items.append(Diagnostic(
                    range=line_range(record.line_start),
                    message=f"Could not evaluate the condition of {record.name}: {record.error}",
                    severity=DiagnosticSeverity.Information,
                    source="config-schema"
                ))
            elif record.enabled and record.evaled is False:
                items.append(Diagnostic(
                    range=line_range(record.line_start),
                    message=f"{record.name} has no effect, it requires {record.requires}",
                    severity=DiagnosticSeverity.Hint,
                    tags=[DiagnosticTag.Unnecessary],
                    source="config-schema"
                ))
        return items


def hover_markdown(record: ConfigOption) -> str:
    """Markdown summary of one option record."""
    parts = [f"**{record.name}**"]
    if record.value is not None:
        parts.append(f"`{record.value}`")
    details = [f"Type: `{record.value_type.value or 'untyped'}`",
               f"Section: {record.section}"]
    if record.units:
        details.append(f"Units: {record.units}")
    if record.group:
        details.append(f"Exclusive group: {record.group}")
    parts.append(' | '.join(details))
    if record.comment:
        parts.append(record.comment)
    if record.notes:
        parts.append(record.notes)
    if record.requires:
        state = 'met' if record.evaled else 'not met'
        parts.append(f"Requires `{record.requires}` ({state})")
    if record.options:
        parts.append(f"Options: `{record.options}`")
    return '\n\n'.join(parts)


def word_at(line: str, character: int):
    """(word, start, end) of the identifier touching *character*."""
    start = end = character
    while start > 0 and (line[start - 1].isalnum() or line[start - 1] == '_'):
        start -= 1
    while end < len(line) and (line[end].isalnum() or line[end] == '_'):
        end += 1
    return line[start:end], start, end


config_server = ConfigLanguageServer()


@config_server.feature(TEXT_DOCUMENT_COMPLETION, CompletionOptions(trigger_characters=["#"]))
def completion(params: CompletionParams) -> CompletionList:
    """Provide completion items."""
    document_uri = params.text_document.uri
    position = params.position

    if document_uri not in config_server.documents:
        return CompletionList(is_incomplete=False, items=[])

    lines = config_server.documents[document_uri].split('\n')
    if position.line >= len(lines):
        return CompletionList(is_incomplete=False, items=[])

    current_line = lines[position.line][:position.character]
    items = []

    # Directives, when the line so far is just '#' and a partial word
    stripped = current_line.lstrip().lstrip('/').lstrip()
    if stripped.startswith('#') and ' ' not in stripped:
        for name, signature, description in DIRECTIVES:
            items.append(CompletionItem(
                label=f"#{name}",
                kind=CompletionItemKind.Keyword,
                detail=signature,
                documentation=description,
                insert_text=name,
            ))
        return CompletionList(is_incomplete=False, items=items)

    schema = config_server.schema_for(document_uri)
    seen = set()
    for record in schema.records():
        if record.name in seen:
            continue
        seen.add(record.name)
        items.append(CompletionItem(
            label=record.name,
            kind=CompletionItemKind.Function if record.params is not None
            else CompletionItemKind.Constant,
            detail=f"{record.section} ({record.value_type.value or 'untyped'})",
            documentation=record.comment,
        ))
    return CompletionList(is_incomplete=False, items=items)


@config_server.feature(TEXT_DOCUMENT_HOVER)
def hover(params: HoverParams) -> Optional[Hover]:
    """Provide hover information."""
    document_uri = params.text_document.uri
    position = params.position

    if document_uri not in config_server.documents:
        return None

    lines = config_server.documents[document_uri].split('\n')
    if position.line >= len(lines):
        return None

    word, word_start, word_end = word_at(lines[position.line], position.character)
    if not word:
        return None

    record = config_server.option_at(document_uri, position.line + 1, word)
    if record is None:
        return None

    return Hover(
        contents=MarkupContent(kind=MarkupKind.Markdown, value=hover_markdown(record)),
        range=Range(
            start=Position(line=position.line, character=word_start),
            end=Position(line=position.line, character=word_end)
        )
    )


@config_server.feature(TEXT_DOCUMENT_DIAGNOSTIC,
                       DiagnosticOptions(inter_file_dependencies=True,
                                         workspace_diagnostics=False))
def diagnostics(params: DocumentDiagnosticParams) -> FullDocumentDiagnosticReport:
    """Provide diagnostics (inactive options, unbalanced conditionals)."""
    items = config_server.collect_diagnostics(params.text_document.uri)
    return FullDocumentDiagnosticReport(items=items)


# Document synchronization
@config_server.feature(TEXT_DOCUMENT_DID_OPEN)
def did_open(params: DidOpenTextDocumentParams):
    """Handle document open event."""
    config_server.update_document(params.text_document.uri, params.text_document.text)


@config_server.feature(TEXT_DOCUMENT_DID_CHANGE)
def did_change(params: DidChangeTextDocumentParams):
    """Handle document change event."""
    for change in params.content_changes:
        # Full sync only: every change carries the whole document
        if getattr(change, 'range', None) is None:
            config_server.update_document(params.text_document.uri, change.text)


@config_server.feature(TEXT_DOCUMENT_DID_CLOSE)
def did_close(params: DidCloseTextDocumentParams):
    """Handle document close event."""
    config_server.update_document(params.text_document.uri, None)
