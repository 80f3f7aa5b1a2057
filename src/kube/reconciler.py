"""Single-document reconciliation against the cluster.

Implements create-or-update with the conflict policy:

    create ──ok──> done
      │ already exists
      ├─ custom op:   delete → sleep → create (once)
      └─ standard op: get → copy identity → update ──ok──> done
                                              │ method not allowed
                                              └─ delete → create again
                                                 (at most max_recreate_attempts)

Every namespaced call falls back to cluster-scoped addressing once when the
server answers NotFound/BadRequest, because some kinds are cluster-scoped
even when a namespace is stamped onto them.
"""

import logging
import time
from typing import Callable, TypeVar

from kube.api import (
    AlreadyExistsError,
    BadRequestError,
    DynamicApi,
    KubeApiError,
    MethodNotAllowedError,
    NotFoundError,
)
from kube.locator import LocationError, ResourceDescriptor
from manifest import ManifestDocument

logger = logging.getLogger(__name__)

T = TypeVar('T')

DEFAULT_RECREATE_DELAY = 1.0
DEFAULT_MAX_RECREATE_ATTEMPTS = 3

# Kinds that own child pods through a replica count; scaled to zero before delete
SCALE_DOWN_RESOURCES = frozenset({'deployments', 'statefulsets', 'replicasets'})

PROTECTED_NAMESPACE = 'default'


class ReconcileError(Exception):
    """A reconciliation step failed.

    Attributes:
        step: Step that failed (create, get, update, delete, recreate)
        kind: Resource kind of the document
        name: Resource name of the document
        cause: Underlying exception
    """

    def __init__(self, step: str, kind: str, name: str, cause: Exception):
        self.step = step
        self.kind = kind
        self.name = name
        self.cause = cause
        super().__init__(f"unable to {step} {kind} '{name}': {cause}")


class Reconciler:
    """Executes create/get/update/delete/apply for one document at a time.

    Attributes:
        api: Dynamic API surface
        recreate_delay: Seconds to wait between delete and create for custom ops
        max_recreate_attempts: Delete/recreate cycles allowed on immutable updates
    """

    def __init__(
        self,
        api: DynamicApi,
        recreate_delay: float = DEFAULT_RECREATE_DELAY,
        max_recreate_attempts: int = DEFAULT_MAX_RECREATE_ATTEMPTS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.api = api
        self.recreate_delay = recreate_delay
        self.max_recreate_attempts = max_recreate_attempts
        self._sleep = sleep

    def _with_fallback(self, step: str, doc: ManifestDocument,
                       call: Callable[[str], T]) -> T:
        """Run call(namespace), retrying once without a namespace."""
        namespace = doc.namespace
        if not namespace:
            return call('')
        try:
            return call(namespace)
        except (NotFoundError, BadRequestError) as e:
            logger.warning(f"Unable to {step} {doc.kind} '{doc.name}' in namespace '{namespace}' "
                           f"({e}), attempting operation without namespace")
            return call('')

    def _create(self, descriptor: ResourceDescriptor, doc: ManifestDocument) -> None:
        try:
            self._with_fallback(
                'create', doc, lambda ns: self.api.create(descriptor, doc.body, ns))
        except AlreadyExistsError:
            raise
        except NotFoundError as e:
            raise LocationError(
                f"resource '{descriptor}' is not served by the cluster "
                f"or its namespace is missing: {e}") from e

    def _get(self, descriptor: ResourceDescriptor, doc: ManifestDocument) -> ManifestDocument:
        live = self._with_fallback(
            'get', doc, lambda ns: self.api.get(descriptor, doc.name, ns))
        return ManifestDocument(live)

    def _update(self, descriptor: ResourceDescriptor, doc: ManifestDocument) -> None:
        self._with_fallback(
            'update', doc, lambda ns: self.api.update(descriptor, doc.body, ns))

    def create(self, descriptor: ResourceDescriptor, doc: ManifestDocument) -> None:
        """Create the object; AlreadyExistsError is raised unwrapped."""
        try:
            self._create(descriptor, doc)
        except AlreadyExistsError:
            raise
        except (KubeApiError, LocationError) as e:
            logger.error(f"Unable to create {doc.kind} '{doc.name}': {e}")
            raise ReconcileError('create', doc.kind, doc.name, e) from e
        logger.info(f"Created resource of type: {doc.kind} and name: {doc.name}")

    def get(self, descriptor: ResourceDescriptor, doc: ManifestDocument) -> ManifestDocument:
        """Fetch the live object matching the document's name."""
        try:
            live = self._get(descriptor, doc)
        except KubeApiError as e:
            logger.error(f"Unable to retrieve {doc.kind} '{doc.name}': {e}")
            raise ReconcileError('get', doc.kind, doc.name, e) from e
        logger.info(f"Retrieved resource of type: {doc.kind} and name: {doc.name}")
        return live

    def update(self, descriptor: ResourceDescriptor, doc: ManifestDocument) -> None:
        """Replace the live object with the document."""
        try:
            self._update(descriptor, doc)
        except KubeApiError as e:
            logger.error(f"Unable to update {doc.kind} '{doc.name}': {e}")
            raise ReconcileError('update', doc.kind, doc.name, e) from e
        logger.info(f"Updated resource of type: {doc.kind} and name: {doc.name}")

    def delete(self, descriptor: ResourceDescriptor, doc: ManifestDocument) -> bool:
        """Delete the object.

        Returns:
            True if a delete was issued, False if skipped or already absent
        """
        if (descriptor.is_core and descriptor.resource == 'namespaces'
                and doc.name == PROTECTED_NAMESPACE):
            logger.info(f"Skipping deletion of namespace '{PROTECTED_NAMESPACE}'")
            return False

        if descriptor.resource in SCALE_DOWN_RESOURCES:
            try:
                live = self._get(descriptor, doc)
            except NotFoundError:
                logger.info(f"{doc.kind} '{doc.name}' already absent")
                return False
            except KubeApiError as e:
                raise ReconcileError('get', doc.kind, doc.name, e) from e
            spec = live.body.setdefault('spec', {})
            spec['replicas'] = 0
            logger.debug(f"Scaling {doc.kind} '{doc.name}' to 0 replicas before delete")
            self.update(descriptor, live)

        try:
            self._with_fallback(
                'delete', doc, lambda ns: self.api.delete(descriptor, doc.name, ns))
        except NotFoundError:
            logger.info(f"{doc.kind} '{doc.name}' already absent")
            return False
        except KubeApiError as e:
            logger.error(f"Unable to delete {doc.kind} '{doc.name}': {e}")
            raise ReconcileError('delete', doc.kind, doc.name, e) from e
        logger.info(f"Deleted resource of type: {doc.kind} and name: {doc.name}")
        return True

    def apply(self, descriptor: ResourceDescriptor, doc: ManifestDocument,
              custom: bool = False) -> None:
        """Create or update the object until it matches the document.

        Args:
            descriptor: Resolved resource type
            doc: Desired state
            custom: Caller-supplied body; replace instead of update on conflict

        Raises:
            ReconcileError: Wrapping the failing step's error
        """
        cycles = 0
        while True:
            try:
                self.create(descriptor, doc)
                return
            except AlreadyExistsError:
                logger.info(f"{doc.kind} '{doc.name}' already exists")

            if custom:
                self._replace(descriptor, doc)
                return

            live = self.get(descriptor, doc)
            doc.adopt_identity(live)
            try:
                self._update(descriptor, doc)
            except MethodNotAllowedError as e:
                if cycles >= self.max_recreate_attempts:
                    logger.error(f"Giving up on {doc.kind} '{doc.name}' "
                                 f"after {cycles} recreate attempts: {e}")
                    raise ReconcileError('update', doc.kind, doc.name, e) from e
                cycles += 1
                logger.info(f"Attempting to delete and recreate {doc.kind} '{doc.name}' "
                            f"({cycles}/{self.max_recreate_attempts})")
                self.delete(descriptor, doc)
                doc.clear_identity()
                continue
            except KubeApiError as e:
                logger.error(f"Unable to update {doc.kind} '{doc.name}': {e}")
                raise ReconcileError('update', doc.kind, doc.name, e) from e
            logger.info(f"Updated resource of type: {doc.kind} and name: {doc.name}")
            return

    def _replace(self, descriptor: ResourceDescriptor, doc: ManifestDocument) -> None:
        """Delete, wait for the deletion to settle, then create once."""
        self.delete(descriptor, doc)
        self._sleep(self.recreate_delay)
        try:
            self._create(descriptor, doc)
        except (KubeApiError, LocationError) as e:
            logger.error(f"Unable to recreate {doc.kind} '{doc.name}': {e}")
            raise ReconcileError('recreate', doc.kind, doc.name, e) from e
        logger.info(f"Recreated resource of type: {doc.kind} and name: {doc.name}")
