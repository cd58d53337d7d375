from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from addons.errors import ConfigurationError
from addons.manifests import DEFAULT_REGISTRY

CONTEXT_KEY = "cluster_autoscaler"


class ClusterAutoscalerConfig(BaseModel):
    """
    Options for the cluster autoscaler add-on, read from the "cluster_autoscaler"
    CDK context key.
    """

    model_config = ConfigDict(extra="forbid")

    version: Optional[str] = Field(
        None, description="The cluster-autoscaler image tag. Defaults to v1.14.6."
    )
    registry: str = Field(
        DEFAULT_REGISTRY, description="The registry hosting the cluster-autoscaler image."
    )
    duplicate_role_binding: bool = Field(
        True, description="Emit the RoleBinding document twice."
    )

    @field_validator("registry")
    def validate_registry(cls, v: str) -> str:
        v = v.rstrip("/")
        if not v:
            raise ValueError("registry must not be empty")
        return v

    @classmethod
    def from_context(cls, node: Any) -> ClusterAutoscalerConfig:
        """
        Builds the config from a construct node's context.

        Args:
            node: A construct node, anything with ``try_get_context``.

        Returns:
            ClusterAutoscalerConfig: The validated config, defaults when the key is unset.

        Raises:
            ConfigurationError: If the context value is not a valid config.
        """
        raw = node.try_get_context(CONTEXT_KEY) or {}
        try:
            return cls.model_validate(raw)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid '{CONTEXT_KEY}' context: {e}") from e
