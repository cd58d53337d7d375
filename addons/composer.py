from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Sequence

from addons.errors import InvalidInputError
from addons.manifests import (
    DEFAULT_REGISTRY,
    ENABLED_TAG_KEY,
    OWNED_TAG_KEY_PREFIX,
    render_manifest,
)

logger = logging.getLogger(__name__)

DEFAULT_VERSION = "v1.14.6"

# https://docs.aws.amazon.com/eks/latest/userguide/cluster-autoscaler.html
AUTOSCALER_ACTIONS = (
    "autoscaling:DescribeAutoScalingGroups",
    "autoscaling:DescribeAutoScalingInstances",
    "autoscaling:DescribeLaunchConfigurations",
    "autoscaling:DescribeTags",
    "autoscaling:SetDesiredCapacity",
    "autoscaling:TerminateInstanceInAutoScalingGroup",
    "ec2:DescribeLaunchTemplateVersions",
)


class TagMutation(NamedTuple):
    group: Any
    key: str
    value: str
    apply_to_launched_instances: bool = True


class PolicyAttachment(NamedTuple):
    group: Any
    role: Any


class ClusterAutoscalerAddon(NamedTuple):
    policy_document: Dict[str, Any]
    tag_mutations: List[TagMutation]
    policy_attachments: List[PolicyAttachment]
    manifest: List[Dict[str, Any]]


def resolve_version(version: Optional[str]) -> str:
    """Returns the image tag to deploy, falling back to the default when unset."""
    return version or DEFAULT_VERSION


def build_policy_document() -> Dict[str, Any]:
    return {
        "Version": "2012-10-17",
        "Statement": [
            {
                "Effect": "Allow",
                "Action": list(AUTOSCALER_ACTIONS),
                "Resource": "*",
            }
        ],
    }


def owned_tag_key(cluster_name: str) -> str:
    return OWNED_TAG_KEY_PREFIX + cluster_name


def compose_cluster_autoscaler(
    cluster_name: str,
    node_groups: Sequence[Any],
    version: Optional[str] = None,
    *,
    registry: str = DEFAULT_REGISTRY,
    duplicate_role_binding: bool = True,
) -> ClusterAutoscalerAddon:
    """
    Composes everything needed to run the cluster autoscaler on a cluster.

    Nothing is provisioned here. The caller applies the returned policy, tags and
    manifest through its own infrastructure tooling (see ``ClusterAutoscaler``).

    Args:
        cluster_name (str): The cluster the autoscaler manages.
        node_groups (Sequence[Any]): The node groups to enable for autoscaling. Each
            must expose a ``role`` attribute. May be empty.
        version (Optional[str]): The cluster-autoscaler image tag. Defaults to v1.14.6.
        registry (str): The registry serving the cluster-autoscaler image.
        duplicate_role_binding (bool): Emit the RoleBinding document twice.

    Returns:
        ClusterAutoscalerAddon: The policy document, tag mutations, policy
        attachments and manifest documents.

    Raises:
        InvalidInputError: If the cluster name is missing or empty.
    """
    if not cluster_name:
        raise InvalidInputError("A cluster name is required to tag node groups.")

    resolved_version = resolve_version(version)
    policy_document = build_policy_document()

    tag_mutations: List[TagMutation] = []
    policy_attachments: List[PolicyAttachment] = []
    for group in node_groups:
        tag_mutations.append(TagMutation(group, owned_tag_key(cluster_name), "owned"))
        tag_mutations.append(TagMutation(group, ENABLED_TAG_KEY, "true"))
        policy_attachments.append(PolicyAttachment(group, group.role))

    if duplicate_role_binding:
        logger.warning(
            "The cluster-autoscaler RoleBinding is emitted twice. "
            "Set duplicate_role_binding to false to emit it once."
        )

    manifest = render_manifest(
        cluster_name,
        resolved_version,
        registry=registry,
        duplicate_role_binding=duplicate_role_binding,
    )

    logger.debug(
        "Composed cluster autoscaler %s for %d node group(s), %d manifest document(s)",
        resolved_version,
        len(policy_attachments),
        len(manifest),
    )

    return ClusterAutoscalerAddon(
        policy_document=policy_document,
        tag_mutations=tag_mutations,
        policy_attachments=policy_attachments,
        manifest=manifest,
    )


def apply_node_group_commands(
    addon: ClusterAutoscalerAddon,
    policy: Any,
    tags_of: Callable[[Any], Any],
) -> None:
    """
    Applies the node-group tag mutations and policy attachments of an addon.

    Args:
        addon (ClusterAutoscalerAddon): The composed addon.
        policy: The policy to attach, anything with ``attach_to_role``.
        tags_of (Callable[[Any], Any]): Returns the tag manager of a node group,
            e.g. ``aws_cdk.Tags.of``.
    """
    for tag in addon.tag_mutations:
        tags_of(tag.group).add(
            tag.key,
            tag.value,
            apply_to_launched_instances=tag.apply_to_launched_instances,
        )

    for attachment in addon.policy_attachments:
        policy.attach_to_role(attachment.role)
