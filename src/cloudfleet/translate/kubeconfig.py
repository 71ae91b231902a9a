"""Kubeconfig rendering for downloaded cluster credentials.

AWS and GCP clusters expose an endpoint and CA bundle; the kubeconfig is
rendered around the provider's exec credential plugin so no secret is
ever written into the document. AKS returns a complete kubeconfig from
its API, which is proxied unchanged.
"""

from __future__ import annotations

from typing import Any

import yaml

from cloudfleet.models import KubeconfigDocument, Provider

CONTENT_TYPE = "application/yaml"


def kubeconfig_filename(cluster_name: str) -> str:
    return f"{cluster_name}-kubeconfig.yaml"


def _exec_user(provider: Provider, cluster_name: str, region: str) -> dict[str, Any]:
    if provider == Provider.AWS:
        return {
            "apiVersion": "client.authentication.k8s.io/v1beta1",
            "command": "aws",
            "args": ["eks", "get-token", "--cluster-name", cluster_name, "--region", region],
        }
    return {
        "apiVersion": "client.authentication.k8s.io/v1beta1",
        "command": "gke-gcloud-auth-plugin",
        "installHint": (
            "Install gke-gcloud-auth-plugin for use with kubectl by following "
            "https://cloud.google.com/kubernetes-engine/docs/how-to/cluster-access-for-kubectl"
        ),
        "provideClusterInfo": True,
    }


def render_kubeconfig(
    provider: Provider,
    cluster_name: str,
    region: str,
    endpoint: str,
    ca_data: str,
    context_name: str | None = None,
) -> str:
    """Render a single-cluster kubeconfig using the provider's exec plugin."""
    name = context_name or cluster_name
    server = endpoint if endpoint.startswith("https://") else f"https://{endpoint}"
    document = {
        "apiVersion": "v1",
        "kind": "Config",
        "clusters": [{
            "name": name,
            "cluster": {"server": server, "certificate-authority-data": ca_data},
        }],
        "contexts": [{"name": name, "context": {"cluster": name, "user": name}}],
        "current-context": name,
        "preferences": {},
        "users": [{
            "name": name,
            "user": {"exec": _exec_user(provider, cluster_name, region)},
        }],
    }
    return yaml.safe_dump(document, sort_keys=False)


def build_document(
    provider: Provider,
    cluster_name: str,
    region: str,
    source: dict[str, Any],
) -> KubeconfigDocument:
    """Turn a provider kubeconfig source into a downloadable document.

    *source* is either ``{"kubeconfig": str}`` (proxied as-is) or
    ``{"endpoint": str, "ca_data": str, "context_name": str | None}``.
    """
    if source.get("kubeconfig"):
        content = source["kubeconfig"]
    else:
        content = render_kubeconfig(
            provider,
            cluster_name,
            region,
            endpoint=source["endpoint"],
            ca_data=source["ca_data"],
            context_name=source.get("context_name"),
        )
    return KubeconfigDocument(
        content=content,
        content_type=CONTENT_TYPE,
        filename=kubeconfig_filename(cluster_name),
    )
