"""Manifest splitting and document model for mesh reconciliation.

A manifest is a multi-document YAML stream describing cluster resources.
Splitting happens in two passes:

1. Lexical: read_chunks() walks the stream line by line and cuts it on
   '---' / '...' boundaries without parsing anything.
2. Semantic: split_manifest() parses each chunk, skips null documents and
   expands 'kind: List' documents into one unit per item.

Parse failures are recorded per chunk so that one bad document does not
hide the others; callers decide whether to abort.
"""

import copy
import io
import logging
from dataclasses import dataclass, field
from typing import Any, Iterator, Optional, TextIO, Union

import yaml

logger = logging.getLogger(__name__)

# Server-assigned metadata carried forward onto a desired object before update
IDENTITY_FIELDS = (
    'creationTimestamp',
    'generateName',
    'generation',
    'selfLink',
    'resourceVersion',
)

LIST_KIND = 'List'


class ManifestParseError(Exception):
    """Manifest could not be decoded."""


@dataclass
class ChunkError:
    """A chunk of the stream that failed to decode.

    Attributes:
        index: Zero-based position of the chunk in the stream
        message: Decoder error message
    """
    index: int
    message: str

    def __str__(self) -> str:
        return f"document {self.index}: {self.message}"


@dataclass
class SplitResult:
    """Outcome of splitting a manifest stream.

    Attributes:
        documents: Normalized document strings in stream order
        errors: Chunks that could not be decoded
    """
    documents: list[str] = field(default_factory=list)
    errors: list[ChunkError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def raise_for_errors(self) -> None:
        """Raise ManifestParseError listing every failed chunk."""
        if self.errors:
            details = '; '.join(str(e) for e in self.errors)
            raise ManifestParseError(f"unable to decode manifest: {details}")


class ManifestDocument:
    """A single resource description with an untyped body.

    Only apiVersion, kind and metadata.{name,namespace} are exposed as
    typed properties; everything else stays in the nested dict.
    """

    def __init__(self, body: dict[str, Any]):
        if not isinstance(body, dict):
            raise ManifestParseError(
                f"expected a mapping, got {type(body).__name__}")
        self.body = body

    @classmethod
    def from_yaml(cls, text: str) -> 'ManifestDocument':
        return parse_document(text)

    @property
    def api_version(self) -> str:
        return str(self.body.get('apiVersion') or '')

    @property
    def kind(self) -> str:
        return str(self.body.get('kind') or '')

    @property
    def metadata(self) -> dict[str, Any]:
        meta = self.body.get('metadata')
        if not isinstance(meta, dict):
            meta = {}
            self.body['metadata'] = meta
        return meta

    @property
    def name(self) -> str:
        return str(self.metadata.get('name') or '')

    @property
    def namespace(self) -> str:
        return str(self.metadata.get('namespace') or '')

    @namespace.setter
    def namespace(self, value: str) -> None:
        self.metadata['namespace'] = value

    @property
    def labels(self) -> dict[str, str]:
        labels = self.metadata.get('labels')
        if not isinstance(labels, dict):
            labels = {}
            self.metadata['labels'] = labels
        return labels

    def adopt_identity(self, live: 'ManifestDocument') -> None:
        """Copy server-assigned identity fields from a live object."""
        live_meta = live.metadata
        for key in IDENTITY_FIELDS:
            if key in live_meta:
                self.metadata[key] = live_meta[key]
            else:
                self.metadata.pop(key, None)

    def clear_identity(self) -> None:
        """Drop server-assigned identity fields so the object can be created."""
        for key in IDENTITY_FIELDS:
            self.metadata.pop(key, None)
        self.metadata.pop('uid', None)

    def copy(self) -> 'ManifestDocument':
        return ManifestDocument(copy.deepcopy(self.body))

    def to_dict(self) -> dict[str, Any]:
        return self.body

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.body, sort_keys=False)

    def __repr__(self) -> str:
        ns = f"{self.namespace}/" if self.namespace else ''
        return f"<ManifestDocument {self.kind} {ns}{self.name}>"


def _is_boundary(line: str) -> bool:
    """True for a '---' document start marker (optionally followed by content)."""
    if not line.startswith('---'):
        return False
    rest = line[3:]
    return not rest or rest[0] in ' \t\r\n'


def _is_end_marker(line: str) -> bool:
    return line.rstrip('\r\n') == '...'


def read_chunks(stream: TextIO) -> Iterator[str]:
    """Yield raw document chunks from a YAML stream.

    Reads incrementally so that arbitrarily large documents are never
    assumed to fit a fixed buffer. Whitespace-only chunks are dropped.
    Content following '---' on the same line belongs to the new chunk.
    '%' directives between documents stay with the document they precede.
    """
    buf: list[str] = []
    directives: list[str] = []

    def flush() -> Optional[str]:
        chunk = ''.join(buf).strip()
        buf.clear()
        return chunk or None

    for line in stream:
        if line.startswith('%') and not ''.join(buf).strip():
            directives.append(line)
            continue
        if _is_boundary(line):
            chunk = flush()
            if chunk is not None:
                yield chunk
            if directives:
                buf.extend(directives)
                buf.append('---\n')
                directives.clear()
            rest = line[3:].strip()
            if rest:
                buf.append(rest + '\n')
            continue
        if _is_end_marker(line):
            chunk = flush()
            if chunk is not None:
                yield chunk
            continue
        buf.append(line)

    # Dangling directives are reported by the decoder
    buf.extend(directives)
    chunk = flush()
    if chunk is not None:
        yield chunk


def split_manifest(source: Union[str, TextIO]) -> SplitResult:
    """Split a manifest into normalized document strings.

    Args:
        source: Manifest text or an open text stream

    Returns:
        SplitResult with documents in stream order and per-chunk errors

    Raises:
        ManifestParseError: If the stream had content but no chunk decoded
    """
    stream = io.StringIO(source) if isinstance(source, str) else source
    result = SplitResult()
    decoded = 0

    for index, chunk in enumerate(read_chunks(stream)):
        try:
            data = yaml.safe_load(chunk)
        except yaml.YAMLError as e:
            logger.error("Unable to decode document %d: %s", index, e)
            result.errors.append(ChunkError(index, str(e)))
            continue

        decoded += 1
        if data is None:
            logger.debug("Skipping null document %d", index)
            continue
        if not isinstance(data, dict):
            result.errors.append(ChunkError(
                index, f"expected a mapping, got {type(data).__name__}"))
            continue

        if data.get('kind') == LIST_KIND:
            items = data.get('items') or []
            if not isinstance(items, list):
                result.errors.append(ChunkError(index, "List items is not an array"))
                continue
            logger.debug("Expanding List document %d into %d items", index, len(items))
            for item in items:
                if item is None:
                    continue
                result.documents.append(yaml.safe_dump(item, sort_keys=False).strip())
            continue

        result.documents.append(chunk)

    if result.errors and decoded == 0:
        result.raise_for_errors()
    return result


def parse_document(text: str) -> ManifestDocument:
    """Parse one normalized document string.

    Raises:
        ManifestParseError: On malformed YAML or a non-mapping document
    """
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ManifestParseError(f"unable to decode document: {e}") from e
    if data is None:
        raise ManifestParseError("document is empty")
    return ManifestDocument(data)


def load_documents(source: Union[str, TextIO]) -> list[ManifestDocument]:
    """Split and parse a manifest, failing on any decode error."""
    result = split_manifest(source)
    result.raise_for_errors()
    return [parse_document(text) for text in result.documents]
