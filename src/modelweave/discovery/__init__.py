"""Join discovery over table schemas."""

from modelweave.discovery.joins import (
    ConfidenceLevel,
    JoinCandidate,
    JoinDiscoveryService,
    JoinHint,
)

__all__ = ["ConfidenceLevel", "JoinCandidate", "JoinDiscoveryService", "JoinHint"]
