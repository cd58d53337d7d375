from typing import Optional, Sequence

from aws_cdk import Tags
from aws_cdk import aws_eks as eks
from aws_cdk import aws_iam as iam
from constructs import Construct

from addons.composer import apply_node_group_commands, compose_cluster_autoscaler
from addons.config import ClusterAutoscalerConfig


class ClusterAutoscaler(Construct):
    """
    Creates the cluster autoscaler IAM policy, tags the node groups for discovery
    and deploys the cluster autoscaler manifest.
    """

    def __init__(
        self,
        scope: Construct,
        id: str,
        cluster: eks.ICluster,
        node_groups: Sequence,
        version: Optional[str] = None,
        config: Optional[ClusterAutoscalerConfig] = None,
    ) -> None:
        super().__init__(scope, id)

        config = config or ClusterAutoscalerConfig.from_context(self.node)

        self.addon = compose_cluster_autoscaler(
            cluster.cluster_name,
            node_groups,
            version or config.version,
            registry=config.registry,
            duplicate_role_binding=config.duplicate_role_binding,
        )

        self.policy = iam.Policy(self, "cluster-autoscaler-policy",
            policy_name="ClusterAutoscalerPolicy",
            document=iam.PolicyDocument.from_json(self.addon.policy_document)
        )

        apply_node_group_commands(self.addon, self.policy, Tags.of)

        self.cluster_autoscaler = eks.KubernetesManifest(self, "cluster-autoscaler-manifest",
            cluster=cluster,
            manifest=self.addon.manifest
        )

    @property
    def image(self) -> str:
        deployment = self.addon.manifest[-1]
        return deployment["spec"]["template"]["spec"]["containers"][0]["image"]
