#!/usr/bin/env python3
import logging
import aws_cdk as cdk
from stacks.eks_stack import EksClusterStack

app = cdk.App()

account = app.node.try_get_context("account")
region = app.node.try_get_context("region")
log_level = app.node.try_get_context("log_level") or "INFO"

logging.basicConfig(
    level=log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

env = cdk.Environment(account=account, region=region)

EksClusterStack(app, "EksClusterStack", env=env)

app.synth()
