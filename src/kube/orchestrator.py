"""Change-set orchestration.

Drives the Reconciler over every document of one manifest, strictly in
manifest order, stopping at the first failure. Deletion walks the same
order as apply; callers that need a clean teardown retry the whole
change-set.
"""

import logging
from dataclasses import dataclass, field
from typing import Union, TextIO

from kube.locator import ResourceDescriptor, locate
from kube.reconciler import Reconciler
from manifest import ManifestDocument, parse_document, split_manifest

logger = logging.getLogger(__name__)


@dataclass
class ChangeSet:
    """Documents of one manifest plus how to reconcile them.

    Attributes:
        documents: Parsed documents in manifest order
        namespace: Namespace stamped onto documents that lack one
        delete: Remove instead of apply
        custom: Caller-supplied body (replace on conflict)
    """
    documents: list[ManifestDocument] = field(default_factory=list)
    namespace: str = ''
    delete: bool = False
    custom: bool = False

    @classmethod
    def from_manifest(cls, manifest: Union[str, TextIO], namespace: str = '',
                      delete: bool = False, custom: bool = False) -> 'ChangeSet':
        """Split and parse a manifest.

        Raises:
            ManifestParseError: If any document fails to decode
        """
        result = split_manifest(manifest)
        result.raise_for_errors()
        documents = [parse_document(text) for text in result.documents]
        return cls(documents=documents, namespace=namespace, delete=delete, custom=custom)

    def stamp_namespace(self) -> None:
        """Apply the namespace override to documents without their own."""
        if not self.namespace:
            return
        for doc in self.documents:
            if not doc.namespace:
                doc.namespace = self.namespace

    def __len__(self) -> int:
        return len(self.documents)


class ApplyOrchestrator:
    """Applies or deletes whole change-sets through a Reconciler."""

    def __init__(self, reconciler: Reconciler):
        self.reconciler = reconciler

    def run(self, change_set: ChangeSet) -> list[tuple[ResourceDescriptor, str]]:
        """Reconcile every document in order.

        Returns:
            (descriptor, name) for each document reconciled

        Raises:
            LocationError: If a document cannot be resolved
            ReconcileError: On the first failing document
        """
        change_set.stamp_namespace()
        verb = 'Deleting' if change_set.delete else 'Applying'
        logger.info(f"{verb} {len(change_set)} document(s)")

        touched: list[tuple[ResourceDescriptor, str]] = []
        for doc in change_set.documents:
            descriptor = locate(doc.api_version, doc.kind)
            if change_set.delete:
                self.reconciler.delete(descriptor, doc)
            else:
                self.reconciler.apply(descriptor, doc, custom=change_set.custom)
            touched.append((descriptor, doc.name))
        return touched

    def apply_change(self, manifest: Union[str, TextIO], namespace: str = '',
                     delete: bool = False, custom: bool = False) -> list[tuple[ResourceDescriptor, str]]:
        """Split a manifest and reconcile it as one change-set.

        Args:
            manifest: Multi-document YAML text or stream
            namespace: Namespace override for documents without one
            delete: Remove the resources instead of applying them
            custom: Manifest body was supplied verbatim by the caller

        Raises:
            ManifestParseError: Before any mutation if a document is malformed
            LocationError: If a document cannot be resolved
            ReconcileError: On the first failing document
        """
        change_set = ChangeSet.from_manifest(manifest, namespace=namespace,
                                             delete=delete, custom=custom)
        try:
            return self.run(change_set)
        except Exception as e:
            action = 'deleting' if delete else 'applying'
            logger.error(f"Error while {action} manifest: {e}")
            raise
