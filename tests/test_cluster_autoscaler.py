import shutil

import pytest

if shutil.which("node") is None:
    pytest.skip("aws-cdk-lib needs a node runtime", allow_module_level=True)

from aws_cdk import App, Stack
from aws_cdk import aws_autoscaling as autoscaling
from aws_cdk import aws_ec2 as ec2
from aws_cdk import aws_eks as eks
from aws_cdk.assertions import Match, Template
from aws_cdk.lambda_layer_kubectl_v32 import KubectlV32Layer

from addons.cluster_autoscaler import ClusterAutoscaler
from addons.config import ClusterAutoscalerConfig
from addons.errors import InvalidInputError
from stacks.eks_stack import EksClusterStack

MANIFEST_RESOURCE = "Custom::AWSCDK-EKS-KubernetesResource"


def make_stack(context=None):
    app = App(context=context or {})
    stack = Stack(app, "TestStack")
    cluster = eks.Cluster.from_cluster_attributes(stack, "Cluster",
        cluster_name="prod",
        kubectl_role_arn="arn:aws:iam::123456789012:role/kubectl",
        kubectl_layer=KubectlV32Layer(stack, "KubectlLayer")
    )
    vpc = ec2.Vpc(stack, "Vpc")
    return stack, cluster, vpc


def make_node_group(stack, vpc, id):
    return autoscaling.AutoScalingGroup(stack, id,
        vpc=vpc,
        instance_type=ec2.InstanceType("t3.large"),
        machine_image=ec2.MachineImage.latest_amazon_linux2()
    )


def test_policy_tags_and_manifest():
    stack, cluster, vpc = make_stack()
    groups = [make_node_group(stack, vpc, "NgA"), make_node_group(stack, vpc, "NgB")]

    autoscaler = ClusterAutoscaler(stack, "ClusterAutoscaler",
        cluster=cluster,
        node_groups=groups
    )
    template = Template.from_stack(stack)

    template.resource_count_is("AWS::IAM::Policy", 1)
    template.has_resource_properties("AWS::IAM::Policy", {
        "PolicyName": "ClusterAutoscalerPolicy",
        "PolicyDocument": {
            "Statement": [Match.object_like({
                "Effect": "Allow",
                "Resource": "*",
                "Action": Match.array_with(["autoscaling:SetDesiredCapacity"]),
            })],
        },
        "Roles": Match.any_value(),
    })
    policy = next(iter(template.find_resources("AWS::IAM::Policy").values()))
    assert len(policy["Properties"]["Roles"]) == 2

    for tag in (
        {"Key": "k8s.io/cluster-autoscaler/prod", "Value": "owned", "PropagateAtLaunch": True},
        {"Key": "k8s.io/cluster-autoscaler/enabled", "Value": "true", "PropagateAtLaunch": True},
    ):
        groups_with_tag = template.find_resources("AWS::AutoScaling::AutoScalingGroup", {
            "Properties": {"Tags": Match.array_with([tag])},
        })
        assert len(groups_with_tag) == 2

    template.resource_count_is(MANIFEST_RESOURCE, 1)
    assert autoscaler.image == "k8s.gcr.io/autoscaling/cluster-autoscaler:v1.14.6"
    assert len(autoscaler.addon.manifest) == 7


def test_version_and_config_from_context():
    stack, cluster, vpc = make_stack({
        "cluster_autoscaler": {"version": "v1.20.0", "duplicate_role_binding": False},
    })

    autoscaler = ClusterAutoscaler(stack, "ClusterAutoscaler",
        cluster=cluster,
        node_groups=[make_node_group(stack, vpc, "NgA")]
    )

    assert autoscaler.image.endswith(":v1.20.0")
    assert len(autoscaler.addon.manifest) == 6


def test_explicit_version_wins_over_config():
    stack, cluster, vpc = make_stack()

    autoscaler = ClusterAutoscaler(stack, "ClusterAutoscaler",
        cluster=cluster,
        node_groups=[],
        version="v1.15.0",
        config=ClusterAutoscalerConfig(version="v1.20.0")
    )

    assert autoscaler.image.endswith(":v1.15.0")
    assert autoscaler.addon.tag_mutations == []
    Template.from_stack(stack).resource_count_is(MANIFEST_RESOURCE, 1)


def test_empty_cluster_name():
    stack, _, vpc = make_stack()
    cluster = eks.Cluster.from_cluster_attributes(stack, "Unnamed",
        cluster_name="",
        kubectl_role_arn="arn:aws:iam::123456789012:role/kubectl"
    )

    with pytest.raises(InvalidInputError):
        ClusterAutoscaler(stack, "ClusterAutoscaler",
            cluster=cluster,
            node_groups=[make_node_group(stack, vpc, "NgA")]
        )


def synth_eks_stack(node_instance_type):
    app = App(context={
        "cluster_name": "prod",
        "cluster_version": "1.32",
        "node_instance_type": node_instance_type,
        "cluster_autoscaler": {"version": "v1.20.0"},
    })
    stack = EksClusterStack(app, "EksClusterStack")
    return Template.from_stack(stack)


def test_eks_stack_one_node_group_per_instance_type():
    template = synth_eks_stack(["t3.large", "m5.large"])

    template.resource_count_is("AWS::AutoScaling::AutoScalingGroup", 2)
    template.has_resource_properties("AWS::AutoScaling::AutoScalingGroup", {
        "DesiredCapacity": "2",
        "MinSize": "1",
        "MaxSize": "3",
        "Tags": Match.array_with([{
            "Key": "k8s.io/cluster-autoscaler/enabled",
            "Value": "true",
            "PropagateAtLaunch": True,
        }]),
    })
    template.has_resource_properties("AWS::IAM::Policy", {
        "PolicyName": "ClusterAutoscalerPolicy",
    })
    template.has_output("ClusterAutoscalerImage", {
        "Value": "k8s.gcr.io/autoscaling/cluster-autoscaler:v1.20.0",
    })


def test_eks_stack_single_instance_type_string():
    template = synth_eks_stack("t3.large")

    template.resource_count_is("AWS::AutoScaling::AutoScalingGroup", 1)
