"""Catalog of supported high-level operations.

Each Operation describes where its manifest comes from (templates, remote
URLs or the caller's body) and whether it runs inline or in the
background. Operations with an action name are handled by a dedicated
method on OperationRunner instead of the generic manifest path.
"""

from dataclasses import dataclass
from typing import Optional

# Operation categories
INSTALL = 'install'
SAMPLE_APPLICATION = 'sample_application'
CONFIGURE = 'configure'
VALIDATE = 'validate'
CUSTOM = 'custom'

CUSTOM_OPERATION = 'custom'

MESH_VERSION = '1.5.1'
MESH_CRD_URL = (
    f'https://raw.githubusercontent.com/istio/istio/{MESH_VERSION}/'
    'manifests/base/files/crd-all.gen.yaml'
)
MESH_CONTROL_PLANE_URL = (
    f'https://raw.githubusercontent.com/istio/istio/{MESH_VERSION}/'
    'manifests/base/files/gen-istio-cluster.yaml'
)

ONLINE_BOUTIQUE_KUBERNETES_URL = (
    'https://raw.githubusercontent.com/GoogleCloudPlatform/microservices-demo/'
    'main/release/kubernetes-manifests.yaml'
)
ONLINE_BOUTIQUE_ISTIO_URL = (
    'https://raw.githubusercontent.com/GoogleCloudPlatform/microservices-demo/'
    'main/release/istio-manifests.yaml'
)


class OperationError(Exception):
    """Invalid operation request."""


@dataclass(frozen=True)
class Operation:
    """A supported operation.

    Attributes:
        key: Lookup key used by callers
        name: Display name used in event summaries
        category: One of install, sample_application, configure, validate, custom
        templates: Template files rendered and joined into the manifest
        urls: Remote manifests fetched and joined into the manifest
        crd_urls: Remote CRD manifests applied before (removed after) urls
        custom: Manifest is the caller-supplied body
        label_namespace: Enable sidecar injection on the target namespace first
        asynchronous: Run in the background and report through events
        action: Name of a dedicated runner method, if any
    """
    key: str
    name: str
    category: str
    templates: tuple[str, ...] = ()
    urls: tuple[str, ...] = ()
    crd_urls: tuple[str, ...] = ()
    custom: bool = False
    label_namespace: bool = False
    asynchronous: bool = True
    action: Optional[str] = None


SUPPORTED_OPERATIONS: dict[str, Operation] = {op.key: op for op in (
    Operation(
        key=CUSTOM_OPERATION,
        name='Custom YAML',
        category=CUSTOM,
        custom=True,
    ),
    Operation(
        key='install_mesh',
        name='Istio control plane',
        category=INSTALL,
        urls=(MESH_CONTROL_PLANE_URL,),
        crd_urls=(MESH_CRD_URL,),
        action='install_mesh',
    ),
    Operation(
        key='httpbin_app',
        name='Httpbin Application',
        category=SAMPLE_APPLICATION,
        templates=('httpbin.yaml', 'httpbin_gateway.yaml'),
        label_namespace=True,
    ),
    Operation(
        key='bookinfo_app',
        name='Book Info Application',
        category=SAMPLE_APPLICATION,
        templates=('bookinfo.yaml', 'bookinfo_gateway.yaml'),
        label_namespace=True,
    ),
    Operation(
        key='bookinfo_subsets',
        name='Book Info subsets',
        category=CONFIGURE,
        templates=('bookinfo_subsets.yaml',),
    ),
    Operation(
        key='strict_mtls',
        name='Enable strict mTLS',
        category=CONFIGURE,
        templates=('strict_mtls.yaml',),
    ),
    Operation(
        key='mutual_mtls',
        name='Enable permissive mTLS',
        category=CONFIGURE,
        templates=('mutual_mtls.yaml',),
    ),
    Operation(
        key='disable_mtls',
        name='Disable mTLS',
        category=CONFIGURE,
        templates=('disable_mtls.yaml',),
    ),
    Operation(
        key='online_boutique',
        name='Online Boutique Application',
        category=SAMPLE_APPLICATION,
        urls=(ONLINE_BOUTIQUE_KUBERNETES_URL, ONLINE_BOUTIQUE_ISTIO_URL),
        label_namespace=True,
    ),
    Operation(
        key='envoy_filter',
        name='Imagehub rate-limit filter',
        category=CONFIGURE,
        templates=('envoy_filter.yaml',),
        asynchronous=False,
        action='configure_envoy_filter',
    ),
    Operation(
        key='injection_status',
        name='Sidecar injection status',
        category=VALIDATE,
        asynchronous=False,
        action='injection_status',
    ),
)}


def get_operation(key: str) -> Operation:
    """Look up an operation by key.

    Raises:
        OperationError: If the key is not in the catalog
    """
    try:
        return SUPPORTED_OPERATIONS[key]
    except KeyError:
        raise OperationError(f"'{key}' is not a valid operation name") from None


def list_operations() -> list[tuple[str, str, str]]:
    """Return (key, name, category) for every operation, sorted by key."""
    return [(op.key, op.name, op.category)
            for op in sorted(SUPPORTED_OPERATIONS.values(), key=lambda o: o.key)]
