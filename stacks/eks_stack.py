from aws_cdk import Stack, CfnOutput
from aws_cdk import aws_ec2 as ec2, aws_eks as eks
from constructs import Construct
from aws_cdk.lambda_layer_kubectl_v32 import KubectlV32Layer
from addons.cluster_autoscaler import ClusterAutoscaler
from addons.config import ClusterAutoscalerConfig

class EksClusterStack(Stack):
    def __init__(self, scope: Construct, id: str, **kwargs):
        super().__init__(scope, id, **kwargs)

        cluster_name = self.node.try_get_context("cluster_name")
        cluster_version = self.node.try_get_context("cluster_version")
        node_types = self.node.try_get_context("node_instance_type") or []
        if isinstance(node_types, str):
            node_types = [node_types]
        desired_size = int(self.node.try_get_context("node_desired_size") or 2)
        min_size = int(self.node.try_get_context("node_min_size") or 1)
        max_size = int(self.node.try_get_context("node_max_size") or 3)

        kubectl_layer = KubectlV32Layer(self, "KubectlLayer")

        cluster = eks.Cluster(self, "EksCluster",
            cluster_name=cluster_name,
            version=eks.KubernetesVersion.of(cluster_version),
            default_capacity=0,
            kubectl_layer=kubectl_layer
        )

        # self-managed groups, the autoscaler resizes them through their ASG tags
        node_groups = [
            cluster.add_auto_scaling_group_capacity(f"NodeGroup{i}",
                instance_type=ec2.InstanceType(node_type),
                desired_capacity=desired_size,
                min_capacity=min_size,
                max_capacity=max_size
            )
            for i, node_type in enumerate(node_types)
        ]

        autoscaler = ClusterAutoscaler(self, "ClusterAutoscaler",
            cluster=cluster,
            node_groups=node_groups,
            config=ClusterAutoscalerConfig.from_context(self.node)
        )

        CfnOutput(self, "ClusterName", value=cluster.cluster_name)
        CfnOutput(self, "ClusterAutoscalerImage", value=autoscaler.image)
