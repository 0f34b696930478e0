"""Federated execution across data sources."""

from modelweave.federation.engine import FederatedExecutionEngine
from modelweave.federation.materializer import ResultMaterializer
from modelweave.federation.partition import FederatedPlan, Partition, plan_federation

__all__ = [
    "FederatedExecutionEngine",
    "FederatedPlan",
    "Partition",
    "ResultMaterializer",
    "plan_federation",
]
