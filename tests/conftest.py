"""Shared pytest fixtures for mesh-adapter tests."""

import copy
import sys
from pathlib import Path

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from kube.api import (  # noqa: E402
    AlreadyExistsError,
    KubeApiError,
    MethodNotAllowedError,
    NotFoundError,
)


class FakeApi:
    """In-memory stand-in for DynamicApi.

    Objects are stored per (resource, namespace, name). Behavior knobs:
    - cluster_scoped: resources that reject namespaced paths with NotFound
    - unserved: resources the server does not know (always NotFound)
    - immutable: name -> number of updates to refuse with MethodNotAllowed
    - failures: (method, name) -> exception raised on that call
    """

    def __init__(self):
        self.objects = {}
        self.calls = []
        self.cluster_scoped = {'namespaces', 'clusterroles'}
        self.unserved = set()
        self.immutable = {}
        self.failures = {}
        self._version = 0

    def _check(self, method, descriptor, name, namespace):
        self.calls.append((method, descriptor.resource, namespace, name))
        if (method, name) in self.failures:
            raise self.failures[(method, name)]
        if descriptor.resource in self.unserved:
            raise NotFoundError(f"the server could not find {descriptor}", 404, 'NotFound')
        if namespace and descriptor.resource in self.cluster_scoped:
            raise NotFoundError(f"{descriptor} is not namespaced", 404, 'NotFound')

    def _key(self, descriptor, name, namespace):
        return (descriptor.resource, namespace, name)

    def _next_version(self):
        self._version += 1
        return str(self._version)

    def create(self, descriptor, body, namespace=''):
        name = body['metadata']['name']
        self._check('create', descriptor, name, namespace)
        key = self._key(descriptor, name, namespace)
        if key in self.objects:
            raise AlreadyExistsError(f"{descriptor.resource} \"{name}\" already exists",
                                     409, 'AlreadyExists')
        stored = copy.deepcopy(body)
        stored['metadata'].pop('namespace', None)
        if namespace:
            stored['metadata']['namespace'] = namespace
        stored['metadata']['resourceVersion'] = self._next_version()
        stored['metadata']['uid'] = f"uid-{name}"
        self.objects[key] = stored
        return copy.deepcopy(stored)

    def get(self, descriptor, name, namespace=''):
        self._check('get', descriptor, name, namespace)
        key = self._key(descriptor, name, namespace)
        if key not in self.objects:
            raise NotFoundError(f"{descriptor.resource} \"{name}\" not found", 404, 'NotFound')
        return copy.deepcopy(self.objects[key])

    def update(self, descriptor, body, namespace=''):
        name = body['metadata']['name']
        self._check('update', descriptor, name, namespace)
        key = self._key(descriptor, name, namespace)
        if key not in self.objects:
            raise NotFoundError(f"{descriptor.resource} \"{name}\" not found", 404, 'NotFound')
        if self.immutable.get(name, 0) > 0:
            self.immutable[name] -= 1
            raise MethodNotAllowedError("field is immutable", 422, 'Invalid')
        live_version = self.objects[key]['metadata'].get('resourceVersion')
        if body['metadata'].get('resourceVersion') not in (None, live_version):
            raise KubeApiError("the object has been modified", 409, 'Conflict')
        stored = copy.deepcopy(body)
        stored['metadata']['resourceVersion'] = self._next_version()
        self.objects[key] = stored
        return copy.deepcopy(stored)

    def delete(self, descriptor, name, namespace=''):
        self._check('delete', descriptor, name, namespace)
        key = self._key(descriptor, name, namespace)
        if key not in self.objects:
            raise NotFoundError(f"{descriptor.resource} \"{name}\" not found", 404, 'NotFound')
        del self.objects[key]
        return {'kind': 'Status', 'status': 'Success'}

    def stored(self, resource, name, namespace=''):
        return self.objects.get((resource, namespace, name))

    def methods(self):
        return [call[0] for call in self.calls]


@pytest.fixture
def fake_api():
    """Empty in-memory cluster."""
    return FakeApi()


@pytest.fixture
def no_sleep():
    """Recording replacement for time.sleep."""
    slept = []
    return slept.append, slept


@pytest.fixture
def bookinfo_manifest():
    """Three-document manifest: Service, Deployment, Gateway."""
    return """\
apiVersion: v1
kind: Service
metadata:
  name: details
  labels:
    app: details
spec:
  ports:
  - port: 9080
    name: http
  selector:
    app: details
---
apiVersion: apps/v1
kind: Deployment
metadata:
  name: details-v1
spec:
  replicas: 1
  selector:
    matchLabels:
      app: details
  template:
    metadata:
      labels:
        app: details
    spec:
      containers:
      - name: details
        image: docker.io/istio/examples-bookinfo-details-v1:1.16.2
---
apiVersion: networking.istio.io/v1alpha3
kind: Gateway
metadata:
  name: bookinfo-gateway
spec:
  selector:
    istio: ingressgateway
"""
