"""Process-wide agent metadata attached to every report."""

from __future__ import annotations

import os
import threading
from dataclasses import dataclass, field

DEFAULT_CLUSTER_ID = "default-cluster"


@dataclass
class AgentInfo:
    """Identity of this agent as seen by the control plane.

    Collectors fill in ``ip`` and the app fills in ``cluster_id`` the first
    time the data becomes available; both are write-once. ``cid`` is set
    when the control plane accepts the agent's registration.
    """

    agent_id: str = ""
    cluster_id: str = ""
    cluster_name: str = ""
    ip: str = ""
    port: str = ""
    version: str = ""
    # Correlation id assigned by the control plane on registration.
    cid: str = ""
    pid: str = field(default_factory=lambda: str(os.getpid()))
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def set_cluster_id_if_absent(self, cluster_id: str) -> bool:
        """Set the cluster id unless one is already configured."""
        with self._lock:
            if self.cluster_id or not cluster_id:
                return False
            self.cluster_id = cluster_id
            return True

    def register(self, cid: str, agent_id: str = "") -> None:
        """Store the identity handed out by the control plane."""
        with self._lock:
            self.cid = cid
            if agent_id:
                self.agent_id = agent_id

    @property
    def registered(self) -> bool:
        return bool(self.cid)

    def set_ip_if_absent(self, ip: str) -> bool:
        """Record the agent's externally reachable IP once."""
        with self._lock:
            if self.ip or not ip:
                return False
            self.ip = ip
            return True
