"""Kubernetes manifest for the AWS cluster autoscaler.

Every document is kept as plain data. String values may carry
``string.Template`` placeholders that are filled in by ``render_manifest``:

* ``${registry}`` - image registry hosting the cluster-autoscaler image
* ``${version}`` - cluster-autoscaler image tag
* ``${cluster_name}`` - cluster whose ownership tag drives node-group discovery
"""
from __future__ import annotations

import copy
from string import Template
from typing import Any, Dict, List

NAME = "cluster-autoscaler"
NAMESPACE = "kube-system"
DEFAULT_REGISTRY = "k8s.gcr.io/autoscaling"

ENABLED_TAG_KEY = "k8s.io/cluster-autoscaler/enabled"
OWNED_TAG_KEY_PREFIX = "k8s.io/cluster-autoscaler/"

_ADDON_LABELS = {
    "k8s-addon": "cluster-autoscaler.addons.k8s.io",
    "k8s-app": NAME,
}


def _metadata() -> Dict[str, Any]:
    return {
        "name": NAME,
        "namespace": NAMESPACE,
        "labels": dict(_ADDON_LABELS),
    }


_SUBJECTS = [{"kind": "ServiceAccount", "name": NAME, "namespace": NAMESPACE}]

SERVICE_ACCOUNT: Dict[str, Any] = {
    "apiVersion": "v1",
    "kind": "ServiceAccount",
    "metadata": _metadata(),
}

CLUSTER_ROLE: Dict[str, Any] = {
    "apiVersion": "rbac.authorization.k8s.io/v1",
    "kind": "ClusterRole",
    "metadata": _metadata(),
    "rules": [
        {
            "apiGroups": [""],
            "resources": ["events", "endpoints"],
            "verbs": ["create", "patch"],
        },
        {
            "apiGroups": [""],
            "resources": ["pods/eviction"],
            "verbs": ["create"],
        },
        {
            "apiGroups": [""],
            "resources": ["pods/status"],
            "verbs": ["update"],
        },
        {
            "apiGroups": [""],
            "resources": ["endpoints"],
            "resourceNames": [NAME],
            "verbs": ["get", "update"],
        },
        {
            "apiGroups": [""],
            "resources": ["nodes"],
            "verbs": ["watch", "list", "get", "update"],
        },
        {
            "apiGroups": [""],
            "resources": [
                "pods",
                "services",
                "replicationcontrollers",
                "persistentvolumeclaims",
                "persistentvolumes",
            ],
            "verbs": ["watch", "list", "get"],
        },
        {
            "apiGroups": ["extensions"],
            "resources": ["replicasets", "daemonsets"],
            "verbs": ["watch", "list", "get"],
        },
        {
            "apiGroups": ["policy"],
            "resources": ["poddisruptionbudgets"],
            "verbs": ["watch", "list"],
        },
        {
            "apiGroups": ["apps"],
            "resources": ["statefulsets", "replicasets", "daemonsets"],
            "verbs": ["watch", "list", "get"],
        },
        {
            "apiGroups": ["storage.k8s.io"],
            "resources": ["storageclasses", "csinodes"],
            "verbs": ["watch", "list", "get"],
        },
        {
            "apiGroups": ["batch", "extensions"],
            "resources": ["jobs"],
            "verbs": ["get", "list", "watch", "patch"],
        },
        {
            "apiGroups": ["coordination.k8s.io"],
            "resources": ["leases"],
            "verbs": ["create"],
        },
        {
            "apiGroups": ["coordination.k8s.io"],
            "resourceNames": [NAME],
            "resources": ["leases"],
            "verbs": ["get", "update"],
        },
    ],
}

ROLE: Dict[str, Any] = {
    "apiVersion": "rbac.authorization.k8s.io/v1",
    "kind": "Role",
    "metadata": _metadata(),
    "rules": [
        {
            "apiGroups": [""],
            "resources": ["configmaps"],
            "verbs": ["create", "list", "watch"],
        },
        {
            "apiGroups": [""],
            "resources": ["configmaps"],
            "resourceNames": [
                "cluster-autoscaler-status",
                "cluster-autoscaler-priority-expander",
            ],
            "verbs": ["delete", "get", "update", "watch"],
        },
    ],
}

CLUSTER_ROLE_BINDING: Dict[str, Any] = {
    "apiVersion": "rbac.authorization.k8s.io/v1",
    "kind": "ClusterRoleBinding",
    "metadata": _metadata(),
    "roleRef": {
        "apiGroup": "rbac.authorization.k8s.io",
        "kind": "ClusterRole",
        "name": NAME,
    },
    "subjects": copy.deepcopy(_SUBJECTS),
}

ROLE_BINDING: Dict[str, Any] = {
    "apiVersion": "rbac.authorization.k8s.io/v1",
    "kind": "RoleBinding",
    "metadata": _metadata(),
    "roleRef": {
        "apiGroup": "rbac.authorization.k8s.io",
        "kind": "Role",
        "name": NAME,
    },
    "subjects": copy.deepcopy(_SUBJECTS),
}

DEPLOYMENT: Dict[str, Any] = {
    "apiVersion": "apps/v1",
    "kind": "Deployment",
    "metadata": {
        "name": NAME,
        "namespace": NAMESPACE,
        "labels": {"app": NAME},
        "annotations": {"cluster-autoscaler.kubernetes.io/safe-to-evict": "false"},
    },
    "spec": {
        "replicas": 1,
        "selector": {"matchLabels": {"app": NAME}},
        "template": {
            "metadata": {
                "labels": {"app": NAME},
                "annotations": {
                    "prometheus.io/scrape": "true",
                    "prometheus.io/port": "8085",
                },
            },
            "spec": {
                "serviceAccountName": NAME,
                "containers": [
                    {
                        "image": "${registry}/cluster-autoscaler:${version}",
                        "name": NAME,
                        "resources": {
                            "limits": {"cpu": "100m", "memory": "300Mi"},
                            "requests": {"cpu": "100m", "memory": "300Mi"},
                        },
                        "command": [
                            "./cluster-autoscaler",
                            "--v=4",
                            "--stderrthreshold=info",
                            "--cloud-provider=aws",
                            "--skip-nodes-with-local-storage=false",
                            "--expander=least-waste",
                            "--node-group-auto-discovery=asg:tag="
                            + ENABLED_TAG_KEY
                            + ","
                            + OWNED_TAG_KEY_PREFIX
                            + "${cluster_name}",
                            "--balance-similar-node-groups",
                            "--skip-nodes-with-system-pods=false",
                        ],
                        "volumeMounts": [
                            {
                                "name": "ssl-certs",
                                "mountPath": "/etc/ssl/certs/ca-certificates.crt",
                                "readOnly": True,
                            }
                        ],
                        "imagePullPolicy": "Always",
                    }
                ],
                "volumes": [
                    {
                        "name": "ssl-certs",
                        "hostPath": {"path": "/etc/ssl/certs/ca-bundle.crt"},
                    }
                ],
            },
        },
    },
}


def manifest_templates(duplicate_role_binding: bool = True) -> List[Dict[str, Any]]:
    """
    Returns the manifest documents in apply order, RBAC before the Deployment.

    Args:
        duplicate_role_binding (bool): Emit the RoleBinding a second time, as the
            manifest has always done. Applying it twice is harmless.

    Returns:
        List[Dict[str, Any]]: The unrendered documents. Callers must not mutate them.
    """
    documents = [SERVICE_ACCOUNT, CLUSTER_ROLE, ROLE, CLUSTER_ROLE_BINDING, ROLE_BINDING]
    if duplicate_role_binding:
        documents.append(ROLE_BINDING)
    documents.append(DEPLOYMENT)
    return documents


def _substitute(value: Any, params: Dict[str, str]) -> Any:
    if isinstance(value, str):
        return Template(value).substitute(params)
    if isinstance(value, dict):
        return {key: _substitute(item, params) for key, item in value.items()}
    if isinstance(value, list):
        return [_substitute(item, params) for item in value]
    return value


def render_manifest(
    cluster_name: str,
    version: str,
    registry: str = DEFAULT_REGISTRY,
    duplicate_role_binding: bool = True,
) -> List[Dict[str, Any]]:
    """
    Renders the manifest for one cluster.

    Args:
        cluster_name (str): Name of the cluster the autoscaler discovers node groups for.
        version (str): The cluster-autoscaler image tag.
        registry (str): The image registry. Defaults to "k8s.gcr.io/autoscaling".
        duplicate_role_binding (bool): See ``manifest_templates``.

    Returns:
        List[Dict[str, Any]]: Freshly built documents, safe for the caller to modify.
    """
    params = {
        "registry": registry,
        "version": version,
        "cluster_name": cluster_name,
    }
    return [
        _substitute(document, params)
        for document in manifest_templates(duplicate_role_binding)
    ]
