"""Dynamic API surface over the kubernetes client.

Issues create/get/update/delete against raw REST paths derived from a
ResourceDescriptor, so any built-in or custom resource can be addressed
without generated models. Server errors are translated into a small
exception hierarchy that the reconciler branches on.
"""

import json
import logging
from typing import Any, Optional

import urllib3
from kubernetes.client import ApiClient
from kubernetes.client.exceptions import ApiException

from kube.locator import ResourceDescriptor

logger = logging.getLogger(__name__)

IMMUTABLE_MARKER = 'field is immutable'


class KubeApiError(Exception):
    """Error returned by the API server or transport.

    Attributes:
        status: HTTP status code (None for transport failures)
        reason: Status reason from the server (e.g. 'NotFound')
        message: Human-readable message
    """

    def __init__(self, message: str, status: Optional[int] = None, reason: str = ''):
        self.status = status
        self.reason = reason
        self.message = message
        super().__init__(message)


class AlreadyExistsError(KubeApiError):
    """Object already exists (409 on create)."""


class NotFoundError(KubeApiError):
    """Object or resource path not found (404)."""


class BadRequestError(KubeApiError):
    """Request rejected as malformed for this path (400)."""


class MethodNotAllowedError(KubeApiError):
    """Server refuses this method on the resource (405 or immutable field)."""


def _status_details(e: ApiException) -> tuple[str, str]:
    """Extract (reason, message) from an ApiException's Status body."""
    reason = e.reason or ''
    message = ''
    if e.body:
        try:
            status = json.loads(e.body)
        except (TypeError, ValueError):
            message = str(e.body)
        else:
            if isinstance(status, dict):
                reason = status.get('reason') or reason
                message = status.get('message') or ''
    return reason, message or reason or f'HTTP {e.status}'


def translate_error(e: ApiException, method: str) -> KubeApiError:
    """Map an ApiException onto the KubeApiError hierarchy."""
    reason, message = _status_details(e)
    status = e.status
    if status == 409 and (method == 'POST' or reason == 'AlreadyExists'):
        return AlreadyExistsError(message, status, reason)
    if status == 404:
        return NotFoundError(message, status, reason)
    if status == 405:
        return MethodNotAllowedError(message, status, reason)
    if status == 422 and IMMUTABLE_MARKER in message:
        return MethodNotAllowedError(message, status, reason)
    if status == 400:
        return BadRequestError(message, status, reason)
    return KubeApiError(message, status, reason)


class DynamicApi:
    """Schema-agnostic client for any (group, version, resource).

    Safe to share across threads; the underlying ApiClient is.
    """

    def __init__(self, api_client: ApiClient):
        self.api_client = api_client

    def _call(self, method: str, path: str, body: Optional[Any] = None) -> dict:
        header_params = {
            'Accept': self.api_client.select_header_accept(['application/json']),
        }
        if body is not None:
            header_params['Content-Type'] = 'application/json'
        logger.debug("%s %s", method, path)
        try:
            result = self.api_client.call_api(
                path, method,
                header_params=header_params,
                body=body,
                response_type='object',
                auth_settings=['BearerToken'],
                _return_http_data_only=True,
                _preload_content=True,
            )
        except ApiException as e:
            raise translate_error(e, method) from e
        except urllib3.exceptions.HTTPError as e:
            raise KubeApiError(f"transport error on {method} {path}: {e}") from e
        return result or {}

    def create(self, descriptor: ResourceDescriptor, body: dict, namespace: str = '') -> dict:
        return self._call('POST', descriptor.collection_path(namespace), body)

    def get(self, descriptor: ResourceDescriptor, name: str, namespace: str = '') -> dict:
        return self._call('GET', descriptor.object_path(name, namespace))

    def update(self, descriptor: ResourceDescriptor, body: dict, namespace: str = '') -> dict:
        name = body.get('metadata', {}).get('name', '')
        return self._call('PUT', descriptor.object_path(name, namespace), body)

    def delete(self, descriptor: ResourceDescriptor, name: str, namespace: str = '') -> dict:
        return self._call(
            'DELETE', descriptor.object_path(name, namespace),
            {'kind': 'DeleteOptions', 'apiVersion': 'v1', 'propagationPolicy': 'Background'},
        )
