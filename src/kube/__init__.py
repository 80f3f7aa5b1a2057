"""Kubernetes reconciliation engine for mesh manifests.

Resolves manifest documents to API resources, reconciles them against a
live cluster and drives whole change-sets in order.

Package name uses 'kube' rather than 'kubernetes' to avoid shadowing the
kubernetes client distribution.
"""
