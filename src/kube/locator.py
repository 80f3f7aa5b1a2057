"""Resource location: apiVersion + kind to group/version/resource.

Plurals are derived by lower-casing the kind and appending 's', except for
kinds listed in PLURAL_EXCEPTIONS. The table is extensible at runtime via
register_plural(). A wrong guess is not detected here; the API server
rejects the path and the reconciler reports a LocationError.
"""

import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)

PLURAL_EXCEPTIONS: dict[str, str] = {
    'logentry': 'logentries',
    'kubernetes': 'kubernetes',
    'podsecuritypolicy': 'podsecuritypolicies',
    'serviceentry': 'serviceentries',
    'workloadentry': 'workloadentries',
    'authorizationpolicy': 'authorizationpolicies',
    'networkpolicy': 'networkpolicies',
    'meshpolicy': 'meshpolicies',
    'policy': 'policies',
    'telemetry': 'telemetries',
    'prometheus': 'prometheuses',
    'ingress': 'ingresses',
    'endpoints': 'endpoints',
    'storageclass': 'storageclasses',
    'ingressclass': 'ingressclasses',
    'priorityclass': 'priorityclasses',
    'runtimeclass': 'runtimeclasses',
    'gatewayclass': 'gatewayclasses',
    'rbacconfig': 'rbacconfigs',
    'clusterrbacconfig': 'clusterrbacconfigs',
}


class LocationError(Exception):
    """Document cannot be mapped to an API resource."""


@dataclass(frozen=True)
class ResourceDescriptor:
    """Addressable resource type (GVR).

    Attributes:
        group: API group ('' for the core group)
        version: API version
        resource: Lower-case plural resource name
    """
    group: str
    version: str
    resource: str

    @property
    def is_core(self) -> bool:
        return not self.group

    @property
    def api_version(self) -> str:
        return f'{self.group}/{self.version}' if self.group else self.version

    def collection_path(self, namespace: str = '') -> str:
        """REST path of the resource collection.

        Args:
            namespace: Namespace qualifier; empty for cluster-scoped addressing
        """
        base = f'/api/{self.version}' if self.is_core else f'/apis/{self.group}/{self.version}'
        if namespace:
            base = f'{base}/namespaces/{namespace}'
        return f'{base}/{self.resource}'

    def object_path(self, name: str, namespace: str = '') -> str:
        return f'{self.collection_path(namespace)}/{name}'

    def __str__(self) -> str:
        return f'{self.api_version}/{self.resource}'


def split_api_version(api_version: str) -> tuple[str, str]:
    """Split apiVersion into (group, version).

    'networking.istio.io/v1alpha3' -> ('networking.istio.io', 'v1alpha3')
    'v1' -> ('', 'v1')
    """
    if '/' in api_version:
        group, version = api_version.split('/', 1)
        return group, version
    return '', api_version


def pluralize(kind: str) -> str:
    """Lower-case and pluralize a kind name."""
    lowered = kind.lower()
    return PLURAL_EXCEPTIONS.get(lowered, lowered + 's')


def register_plural(kind: str, plural: str) -> None:
    """Add or override an irregular plural."""
    PLURAL_EXCEPTIONS[kind.lower()] = plural.lower()


def locate(api_version: str, kind: str) -> ResourceDescriptor:
    """Resolve apiVersion and kind to a ResourceDescriptor.

    Raises:
        LocationError: If apiVersion or kind is missing
    """
    if not api_version:
        raise LocationError(f"document of kind '{kind}' has no apiVersion")
    if not kind:
        raise LocationError(f"document with apiVersion '{api_version}' has no kind")

    group, version = split_api_version(api_version)
    if not version:
        raise LocationError(f"invalid apiVersion '{api_version}'")

    descriptor = ResourceDescriptor(group=group, version=version, resource=pluralize(kind))
    logger.debug("Computed resource: %s", descriptor)
    return descriptor
