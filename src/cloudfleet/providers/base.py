"""Provider client protocols and shared SDK error mapping.

A provider client is a thin, region-bound adapter over one cloud SDK. It
exchanges native request/response dicts; translation to the unified model
happens in ``cloudfleet.translate``. Every SDK exception leaving a client
is mapped into the cloudfleet error taxonomy with the operation tag that
triggered it.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable

from cloudfleet.errors import CloudFleetError, NotFoundError, ProviderError
from cloudfleet.models import Provider

logger = logging.getLogger(__name__)


@runtime_checkable
class ProviderClient(Protocol):
    """Cluster and node pool operations every provider supports."""

    provider: Provider
    region: str

    def create_cluster(self, request: dict[str, Any]) -> dict[str, Any]: ...

    def get_cluster(self, name: str) -> dict[str, Any]: ...

    def list_clusters(self) -> list[dict[str, Any]]: ...

    def delete_cluster(self, name: str) -> None: ...

    def update_cluster_tags(self, name: str, tags: dict[str, str]) -> dict[str, Any]: ...

    def get_kubeconfig_source(self, name: str) -> dict[str, Any]: ...

    def create_node_pool(self, cluster_name: str, request: dict[str, Any]) -> dict[str, Any]: ...

    def get_node_pool(self, cluster_name: str, name: str) -> dict[str, Any]: ...

    def list_node_pools(self, cluster_name: str) -> list[dict[str, Any]]: ...

    def scale_node_pool(
        self, cluster_name: str, name: str, min_size: int, desired_size: int, max_size: int,
    ) -> dict[str, Any]: ...

    def delete_node_pool(self, cluster_name: str, name: str) -> None: ...


@runtime_checkable
class NetworkClient(Protocol):
    """VPC, subnet and security group operations (AWS and GCP)."""

    provider: Provider
    region: str

    def list_vpcs(self) -> list[dict[str, Any]]: ...

    def get_vpc(self, vpc_id: str) -> dict[str, Any]: ...

    def create_vpc(self, request: dict[str, Any]) -> dict[str, Any]: ...

    def delete_vpc(self, vpc_id: str) -> None: ...

    def list_subnets(self, vpc_id: str | None = None) -> list[dict[str, Any]]: ...

    def get_subnet(self, subnet_id: str) -> dict[str, Any]: ...

    def create_subnet(self, request: dict[str, Any]) -> dict[str, Any]: ...

    def delete_subnet(self, subnet_id: str) -> None: ...

    def list_security_groups(self, vpc_id: str | None = None) -> list[dict[str, Any]]: ...

    def get_security_group(self, group_id: str) -> dict[str, Any]: ...

    def create_security_group(self, request: dict[str, Any]) -> dict[str, Any]: ...

    def delete_security_group(self, group_id: str) -> None: ...


class SdkClient:
    """Base for provider clients: invokes SDK callables and maps their errors.

    Subclasses fill the error-code tables and override ``_error_code`` to
    extract the code from their SDK's exception type.
    """

    provider: Provider
    region: str = ""

    NOT_FOUND: frozenset[str] = frozenset()
    FORBIDDEN: frozenset[str] = frozenset()
    UNAUTHENTICATED: frozenset[str] = frozenset()
    THROTTLED: frozenset[str] = frozenset()
    INVALID: frozenset[str] = frozenset()

    def _error_code(self, exc: Exception) -> str:
        return type(exc).__name__

    def _invoke(
        self,
        operation: str,
        fn: Callable[..., Any],
        *args: Any,
        kind: str = "",
        name: str = "",
        **kwargs: Any,
    ) -> Any:
        # ``name`` tags the error; SDK methods that take a ``name`` field get ``name_``
        if "name_" in kwargs:
            kwargs["name"] = kwargs.pop("name_")
        logger.debug("%s %s %s", self.provider, operation, name)
        try:
            return fn(*args, **kwargs)
        except CloudFleetError:
            raise
        except Exception as exc:
            raise self._map_error(exc, operation, kind, name) from exc

    def _map_error(
        self,
        exc: Exception,
        operation: str,
        kind: str = "",
        name: str = "",
    ) -> CloudFleetError:
        code = self._error_code(exc)
        if code in self.NOT_FOUND:
            return NotFoundError(kind or "resource", name or "?", detail=str(exc))
        for bucket, label in (
            (self.FORBIDDEN, "forbidden"),
            (self.UNAUTHENTICATED, "unauthenticated"),
            (self.THROTTLED, "throttled"),
            (self.INVALID, "invalid"),
        ):
            if code in bucket:
                return ProviderError(self.provider, operation, str(exc), code=label)
        return ProviderError(self.provider, operation, str(exc))


def to_native_dict(message: Any) -> dict[str, Any]:
    """Convert an SDK response object into a plain dict.

    Handles plain dicts, proto-plus messages (google-cloud-*) and msrest
    models (azure-mgmt-*).
    """
    if isinstance(message, dict):
        return message
    as_dict = getattr(message, "as_dict", None)
    if callable(as_dict):
        return as_dict()
    return type(message).to_dict(message, use_integers_for_enums=False)
