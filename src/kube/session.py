"""Client session: cluster handles plus the event channel.

One session is created per logical mesh connection and shared by reference
with every operation started on it.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import yaml
from kubernetes import client as k8s_client
from kubernetes import config as k8s_config
from kubernetes.config.config_exception import ConfigException

from config import AdapterConfig, ConfigError
from events import EventNotifier
from kube.api import DynamicApi
from kube.orchestrator import ApplyOrchestrator
from kube.reconciler import Reconciler

logger = logging.getLogger(__name__)


def _api_client(config: AdapterConfig, kubeconfig: Optional[bytes] = None) -> k8s_client.ApiClient:
    """Build an ApiClient.

    Resolution order:
    1. kubeconfig bytes supplied by the caller
    2. config.kubeconfig file (or the default kubeconfig location)
    3. in-cluster service account
    """
    context = config.context or None
    try:
        if kubeconfig:
            data = yaml.safe_load(kubeconfig)
            if not isinstance(data, dict):
                raise ConfigError("kubeconfig is not a mapping")
            return k8s_config.new_client_from_config_dict(data, context=context)
        config_file = str(config.kubeconfig) if config.kubeconfig else None
        return k8s_config.new_client_from_config(config_file=config_file, context=context)
    except (ConfigException, FileNotFoundError, yaml.YAMLError) as e:
        if kubeconfig or config.kubeconfig:
            raise ConfigError(f"unable to load kubeconfig: {e}") from e
        logger.debug("No kubeconfig available (%s), trying in-cluster config", e)

    try:
        k8s_config.load_incluster_config()
    except ConfigException as e:
        raise ConfigError(f"unable to create a kubernetes client: {e}") from e
    return k8s_client.ApiClient()


@dataclass
class ClientSession:
    """Handles needed to reconcile against one cluster.

    Attributes:
        api: Schema-agnostic client for any resource
        apps: Typed client for built-in apps/v1 calls (deployment patches)
        notifier: Event channel drained by the streaming consumer
        config: Settings the session was built from
    """
    api: DynamicApi
    apps: k8s_client.AppsV1Api
    notifier: EventNotifier
    config: AdapterConfig

    @classmethod
    def from_config(cls, config: AdapterConfig,
                    kubeconfig: Optional[bytes] = None) -> 'ClientSession':
        """Create a session from adapter config and optional kubeconfig bytes.

        Raises:
            ConfigError: If no usable cluster credentials are found
        """
        api_client = _api_client(config, kubeconfig)
        logger.debug("Created kubernetes client for %s", api_client.configuration.host)
        return cls(
            api=DynamicApi(api_client),
            apps=k8s_client.AppsV1Api(api_client),
            notifier=EventNotifier(
                maxsize=config.event_queue_size,
                poll_interval=config.event_poll_interval,
                push_timeout=config.event_push_timeout,
            ),
            config=config,
        )

    def reconciler(self) -> Reconciler:
        return Reconciler(
            self.api,
            recreate_delay=self.config.recreate_delay,
            max_recreate_attempts=self.config.max_recreate_attempts,
        )

    def orchestrator(self) -> ApplyOrchestrator:
        return ApplyOrchestrator(self.reconciler())
