"""Data models shared across kubesync components."""

from kubesync.models.agent import AgentInfo
from kubesync.models.snapshots import ResourceKind, Snapshot

__all__ = ["AgentInfo", "ResourceKind", "Snapshot"]
