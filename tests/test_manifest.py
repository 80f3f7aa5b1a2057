#!/usr/bin/env python3
"""Tests for manifest.py - splitting and the document model.

Tests verify:
1. Lexical chunking on '---' / '...' boundaries
2. Null-document skipping and List expansion
3. Per-chunk error collection
4. ManifestDocument identity handling
"""

import io
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

import pytest
import yaml
from manifest import (
    IDENTITY_FIELDS,
    ManifestDocument,
    ManifestParseError,
    load_documents,
    parse_document,
    read_chunks,
    split_manifest,
)


class TestReadChunks:
    """Test lexical splitting."""

    def test_single_document(self):
        """A stream without separators is one chunk."""
        chunks = list(read_chunks(io.StringIO("a: 1\nb: 2\n")))
        assert chunks == ["a: 1\nb: 2"]

    def test_separators(self):
        """'---' lines separate documents."""
        text = "a: 1\n---\nb: 2\n---\nc: 3\n"
        assert list(read_chunks(io.StringIO(text))) == ["a: 1", "b: 2", "c: 3"]

    def test_leading_separator_and_blank_chunks(self):
        """Empty chunks between separators are dropped."""
        text = "---\na: 1\n---\n\n   \n---\nb: 2\n---\n"
        assert list(read_chunks(io.StringIO(text))) == ["a: 1", "b: 2"]

    def test_end_marker(self):
        """'...' ends a document."""
        text = "a: 1\n...\nb: 2\n"
        assert list(read_chunks(io.StringIO(text))) == ["a: 1", "b: 2"]

    def test_content_after_separator(self):
        """Content on the '---' line belongs to the new document."""
        text = "a: 1\n--- !!map\nb: 2\n"
        chunks = list(read_chunks(io.StringIO(text)))
        assert chunks == ["a: 1", "!!map\nb: 2"]

    def test_directive_kept_with_document(self):
        """A '%YAML' directive travels with the document it precedes."""
        text = "a: 1\n---\n%YAML 1.1\n---\nb: 2\n"
        chunks = list(read_chunks(io.StringIO(text)))

        assert chunks == ["a: 1", "%YAML 1.1\n---\nb: 2"]
        assert yaml.safe_load(chunks[1]) == {'b': 2}

    def test_dashes_inside_scalar_not_a_boundary(self):
        """'----' or '---x' do not split."""
        text = "a: |\n  ----\n---x: 1\n"
        assert len(list(read_chunks(io.StringIO(text)))) == 1

    def test_large_document(self):
        """Documents larger than any fixed buffer are kept whole."""
        body = "data:\n" + "".join(f"  key{i}: {'x' * 200}\n" for i in range(2000))
        chunks = list(read_chunks(io.StringIO(body)))
        assert len(chunks) == 1
        assert len(yaml.safe_load(chunks[0])['data']) == 2000


class TestSplitManifest:
    """Test semantic splitting."""

    def test_documents_in_order(self, bookinfo_manifest):
        """Documents come out in stream order."""
        result = split_manifest(bookinfo_manifest)

        assert result.ok
        kinds = [yaml.safe_load(d)['kind'] for d in result.documents]
        assert kinds == ['Service', 'Deployment', 'Gateway']

    def test_accepts_stream(self, bookinfo_manifest):
        """A text stream splits the same as a string."""
        result = split_manifest(io.StringIO(bookinfo_manifest))
        assert len(result.documents) == 3

    def test_null_documents_skipped(self):
        """Comment-only and null documents produce nothing."""
        text = "# just a comment\n---\nnull\n---\nkind: A\n"
        result = split_manifest(text)

        assert result.ok
        assert len(result.documents) == 1

    def test_list_expanded(self):
        """A 'kind: List' document yields one document per item."""
        text = """\
apiVersion: v1
kind: List
items:
- apiVersion: v1
  kind: ConfigMap
  metadata:
    name: one
- apiVersion: v1
  kind: ConfigMap
  metadata:
    name: two
---
apiVersion: v1
kind: Secret
metadata:
  name: three
"""
        result = split_manifest(text)

        names = [yaml.safe_load(d)['metadata']['name'] for d in result.documents]
        assert names == ['one', 'two', 'three']

    def test_empty_list(self):
        """A List with no items contributes nothing."""
        result = split_manifest("apiVersion: v1\nkind: List\nitems: []\n")
        assert result.ok
        assert result.documents == []

    def test_bad_chunk_collected(self):
        """A malformed chunk is reported without hiding the others."""
        text = "kind: A\n---\nkey: [unclosed\n---\nkind: B\n"
        result = split_manifest(text)

        assert not result.ok
        assert len(result.documents) == 2
        assert [e.index for e in result.errors] == [1]

    def test_non_mapping_is_error(self):
        """A scalar or sequence document is an error."""
        result = split_manifest("kind: A\n---\n- 1\n- 2\n")
        assert len(result.errors) == 1
        assert 'mapping' in result.errors[0].message

    def test_all_chunks_bad_raises(self):
        """Nothing decodable at all raises immediately."""
        with pytest.raises(ManifestParseError):
            split_manifest("key: [unclosed\n---\nother: {bad\n")

    def test_raise_for_errors(self):
        """raise_for_errors lists the failing chunk."""
        result = split_manifest("kind: A\n---\nkey: [unclosed\n")
        with pytest.raises(ManifestParseError, match='document 1'):
            result.raise_for_errors()

    def test_empty_manifest(self):
        """Empty input yields no documents and no errors."""
        result = split_manifest("")
        assert result.ok
        assert result.documents == []


class TestParseDocument:
    """Test single-document parsing."""

    def test_parse(self):
        doc = parse_document("apiVersion: v1\nkind: Service\nmetadata:\n  name: web\n")

        assert doc.api_version == 'v1'
        assert doc.kind == 'Service'
        assert doc.name == 'web'
        assert doc.namespace == ''

    def test_malformed(self):
        with pytest.raises(ManifestParseError):
            parse_document("key: [unclosed")

    def test_empty(self):
        with pytest.raises(ManifestParseError, match='empty'):
            parse_document("")

    def test_non_mapping(self):
        with pytest.raises(ManifestParseError, match='mapping'):
            parse_document("- a\n- b\n")

    def test_load_documents_fails_on_any_error(self):
        """load_documents refuses a manifest with one bad chunk."""
        with pytest.raises(ManifestParseError):
            load_documents("kind: A\n---\nkey: [unclosed\n")


class TestManifestDocument:
    """Test ManifestDocument accessors and identity handling."""

    def test_namespace_setter_creates_metadata(self):
        """Setting a namespace on a document without metadata works."""
        doc = ManifestDocument({'apiVersion': 'v1', 'kind': 'ConfigMap'})
        doc.namespace = 'demo'

        assert doc.body['metadata'] == {'namespace': 'demo'}

    def test_labels_created_on_access(self):
        doc = ManifestDocument({'metadata': {'name': 'ns'}})
        doc.labels['istio-injection'] = 'enabled'

        assert doc.body['metadata']['labels'] == {'istio-injection': 'enabled'}

    def test_adopt_identity(self):
        """Identity fields are copied from the live object, others untouched."""
        doc = ManifestDocument({'metadata': {'name': 'web', 'labels': {'a': 'b'}}})
        live = ManifestDocument({'metadata': {
            'name': 'web',
            'resourceVersion': '42',
            'generation': 3,
            'creationTimestamp': '2024-01-01T00:00:00Z',
            'labels': {'server': 'side'},
        }})

        doc.adopt_identity(live)

        assert doc.metadata['resourceVersion'] == '42'
        assert doc.metadata['generation'] == 3
        assert doc.metadata['creationTimestamp'] == '2024-01-01T00:00:00Z'
        assert doc.labels == {'a': 'b'}

    def test_adopt_identity_drops_stale_fields(self):
        """Fields absent on the live object are removed from the document."""
        doc = ManifestDocument({'metadata': {'name': 'web', 'selfLink': '/old'}})
        doc.adopt_identity(ManifestDocument({'metadata': {'name': 'web'}}))

        assert 'selfLink' not in doc.metadata

    def test_clear_identity(self):
        metadata = {key: 'x' for key in IDENTITY_FIELDS}
        metadata.update({'name': 'web', 'uid': 'abc'})
        doc = ManifestDocument({'metadata': metadata})

        doc.clear_identity()

        assert doc.metadata == {'name': 'web'}

    def test_copy_is_deep(self):
        doc = ManifestDocument({'metadata': {'name': 'web', 'labels': {'a': 'b'}}})
        clone = doc.copy()
        clone.labels['a'] = 'changed'

        assert doc.labels['a'] == 'b'

    def test_to_yaml_round_trips(self):
        body = {'apiVersion': 'v1', 'kind': 'Service', 'metadata': {'name': 'web'}}
        assert ManifestDocument.from_yaml(ManifestDocument(body).to_yaml()).to_dict() == body

    def test_rejects_non_mapping(self):
        with pytest.raises(ManifestParseError):
            ManifestDocument(['not', 'a', 'dict'])
