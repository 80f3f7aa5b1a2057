"""Operation execution.

Turns an ApplyRequest into a manifest (custom body, rendered templates or
remote files), reconciles it through the session's orchestrator and reports
the outcome. Background operations are acknowledged immediately and report
only through the session's event channel; synchronous operations also
raise on failure.
"""

import json
import logging
import threading
import uuid
from dataclasses import dataclass, replace
from typing import Callable, Optional

from kubernetes.client.exceptions import ApiException

from events import Event
from kube.api import NotFoundError, translate_error
from kube.locator import ResourceDescriptor
from kube.reconciler import ReconcileError
from kube.session import ClientSession
from manifest import ManifestDocument
from operations.fetch import fetch_manifest
from operations.registry import MESH_VERSION, Operation, OperationError, get_operation
from operations.templates import TemplateRenderer

logger = logging.getLogger(__name__)

NAMESPACES = ResourceDescriptor(group='', version='v1', resource='namespaces')
INJECTION_LABEL = 'istio-injection'
NAMESPACE_TEMPLATE = 'namespace.yaml'
FILTER_PATCH_FILE = 'filter_patch.json'
FILTER_DEPLOYMENT = 'api-v1'


@dataclass(frozen=True)
class ApplyRequest:
    """Caller request for one operation.

    Attributes:
        op_key: Operation catalog key
        operation_id: Correlation id for events (generated when empty)
        namespace: Target namespace
        delete: Remove instead of apply
        custom_body: Manifest for the custom operation
        username: Substituted into templates as user_name
    """
    op_key: str
    operation_id: str = ''
    namespace: str = 'default'
    delete: bool = False
    custom_body: str = ''
    username: str = ''


@dataclass(frozen=True)
class ApplyResponse:
    """Acknowledgement returned to the caller.

    Attributes:
        operation_id: Id carried by every event of this operation
        message: Result of a synchronous operation ('' for background ones)
    """
    operation_id: str
    message: str = ''


def _verbs(delete: bool) -> tuple[str, str]:
    """(progressive, past) verbs for event text."""
    return ('removing', 'removed') if delete else ('deploying', 'deployed')


class OperationRunner:
    """Executes catalog operations against one ClientSession."""

    def __init__(self, session: ClientSession,
                 renderer: Optional[TemplateRenderer] = None,
                 fetcher: Callable[..., str] = fetch_manifest):
        self.session = session
        self.renderer = renderer or TemplateRenderer(session.config.templates_dir)
        self.fetcher = fetcher
        self.orchestrator = session.orchestrator()
        self.reconciler = self.orchestrator.reconciler

    def apply_operation(self, request: ApplyRequest) -> ApplyResponse:
        """Validate and start an operation.

        Raises:
            OperationError: Unknown key or empty custom body
            Exception: Any failure of a synchronous operation
        """
        op = get_operation(request.op_key)
        if op.custom and not request.custom_body.strip():
            raise OperationError(
                f"operation id: {request.operation_id}, error: yaml body is empty "
                f"for {op.key} operation")

        if not request.operation_id:
            request = replace(request, operation_id=str(uuid.uuid4()))

        if op.asynchronous:
            thread = threading.Thread(
                target=self._run_background,
                args=(op, request),
                name=f'op-{op.key}-{request.operation_id[:8]}',
                daemon=True,
            )
            thread.start()
            logger.info(f"Started operation '{op.key}' ({request.operation_id}) in background")
            return ApplyResponse(operation_id=request.operation_id)

        message = self._run_inline(op, request)
        return ApplyResponse(operation_id=request.operation_id, message=message)

    def _publish(self, event: Event) -> None:
        self.session.notifier.publish(event)

    def _run_background(self, op: Operation, request: ApplyRequest) -> None:
        """Thread target: run the operation and report the outcome as an event."""
        doing, done = _verbs(request.delete)
        try:
            message = self.execute(op, request)
        except Exception as e:
            logger.error(f"Error while {doing} \"{op.name}\": {e}")
            self._publish(Event.error(
                request.operation_id,
                f"Error while {doing} \"{op.name}\"",
                str(e),
            ))
            return
        self._publish(Event.info(
            request.operation_id,
            f"\"{op.name}\" {done} successfully",
            message,
        ))

    def _run_inline(self, op: Operation, request: ApplyRequest) -> str:
        doing, _ = _verbs(request.delete)
        try:
            message = self.execute(op, request)
        except Exception as e:
            logger.error(f"Error while {doing} \"{op.name}\": {e}")
            self._publish(Event.error(
                request.operation_id, f"Error while {doing} \"{op.name}\"", str(e)))
            raise
        self._publish(Event.info(request.operation_id, message, message))
        return message

    def execute(self, op: Operation, request: ApplyRequest) -> str:
        """Run an operation to completion in the calling thread.

        Returns:
            Human-readable result message
        """
        if op.action:
            handler = getattr(self, op.action)
            result: str = handler(op, request)
            return result

        if op.label_namespace and not request.delete:
            self.prepare_namespace(request.namespace)

        manifest = self.build_manifest(op, request)
        self.orchestrator.apply_change(
            manifest,
            namespace=request.namespace,
            delete=request.delete,
            custom=op.custom,
        )
        _, done = _verbs(request.delete)
        return f"\"{op.name}\" is now {done} in namespace '{request.namespace}'"

    def build_manifest(self, op: Operation, request: ApplyRequest) -> str:
        """Produce the manifest text for an operation."""
        if op.custom:
            return request.custom_body

        parts = [
            self.renderer.render(name, username=request.username, namespace=request.namespace)
            for name in op.templates
        ]
        parts.extend(
            self.fetcher(url, timeout=self.session.config.fetch_timeout)
            for url in op.urls
        )
        return '\n---\n'.join(parts)

    def create_namespace(self, namespace: str) -> None:
        logger.debug(f"Creating namespace: {namespace}")
        manifest = self.renderer.render(NAMESPACE_TEMPLATE, namespace=namespace)
        self.orchestrator.apply_change(manifest)

    def _get_namespace(self, namespace: str) -> ManifestDocument:
        doc = ManifestDocument({
            'apiVersion': 'v1',
            'kind': 'Namespace',
            'metadata': {'name': namespace},
        })
        return self.reconciler.get(NAMESPACES, doc)

    def prepare_namespace(self, namespace: str) -> None:
        """Ensure the namespace exists and has sidecar injection enabled."""
        try:
            live = self._get_namespace(namespace)
        except ReconcileError as e:
            if not isinstance(e.cause, NotFoundError):
                raise
            self.create_namespace(namespace)
            live = self._get_namespace(namespace)

        if live.labels.get(INJECTION_LABEL) == 'enabled':
            return
        live.labels[INJECTION_LABEL] = 'enabled'
        self.reconciler.update(NAMESPACES, live)
        logger.info(f"Enabled sidecar injection on namespace '{namespace}'")

    def install_mesh(self, op: Operation, request: ApplyRequest) -> str:
        """Install or remove the mesh control plane and its CRDs.

        CRDs are applied before the control plane and deleted after it, so
        no custom resource outlives its definition. Documents keep their own
        namespaces; the request namespace is not applied.
        """
        timeout = self.session.config.fetch_timeout
        crds = [self.fetcher(url, timeout=timeout) for url in op.crd_urls]
        control_plane = '\n---\n'.join(self.fetcher(url, timeout=timeout) for url in op.urls)

        if request.delete:
            self.orchestrator.apply_change(control_plane, delete=True)
            logger.debug("Removing CRDs...")
            for manifest in crds:
                self.orchestrator.apply_change(manifest, delete=True)
        else:
            logger.debug("Applying CRDs...")
            for manifest in crds:
                self.orchestrator.apply_change(manifest)
            self.orchestrator.apply_change(control_plane)

        _, done = _verbs(request.delete)
        return f"{op.name} {MESH_VERSION} is now {done}."

    def configure_envoy_filter(self, op: Operation, request: ApplyRequest) -> str:
        """Patch the filter deployment, then apply the EnvoyFilter manifest."""
        if not request.delete:
            patch = json.loads(self.renderer.read(FILTER_PATCH_FILE))
            try:
                self.session.apps.patch_namespaced_deployment(
                    FILTER_DEPLOYMENT, request.namespace, patch)
            except ApiException as e:
                raise ReconcileError(
                    'patch', 'Deployment', FILTER_DEPLOYMENT, translate_error(e, 'PATCH')) from e
            logger.info(f"Patched deployment '{FILTER_DEPLOYMENT}' in '{request.namespace}'")

        manifest = self.build_manifest(op, request)
        self.orchestrator.apply_change(
            manifest, namespace=request.namespace, delete=request.delete)
        _, done = _verbs(request.delete)
        return f"{op.name} {done} successfully"

    def injection_status(self, op: Operation, request: ApplyRequest) -> str:
        """Report whether sidecar injection is enabled on the namespace."""
        live = self._get_namespace(request.namespace)
        state = 'enabled' if live.labels.get(INJECTION_LABEL) == 'enabled' else 'disabled'
        return f"Sidecar injection is {state} for namespace '{request.namespace}'"
