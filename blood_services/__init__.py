"""
blood_services -- Package init and public API.

Responsibility:
    Stateful orchestration over the blood kernel.  This is the **only**
    layer that opens transactions, applies the audit failure mode and
    talks to the predictive collaborators.

Architecture position:
    Services -- orchestration over kernel + configuration.

    Dependency direction:
        blood_services/ -> blood_kernel/   (allowed)
        blood_services/ -> blood_config/   (allowed)
        blood_kernel/   -> blood_services/ (FORBIDDEN)

Invariants enforced:
    - Layer isolation: blood_kernel must never import from this package.
    - DI transparency: kernel service wiring is centralised in
      KernelServices; no kernel service self-constructs dependencies.
"""

from blood_kernel.logging_config import get_logger

logger = get_logger("services")

from blood_services.bank_service import BloodBankService, bootstrap
from blood_services.context import SYSTEM_CONTEXT, RequestContext
from blood_services.forecasting import (
    DemandForecastRow,
    DemandPrediction,
    DemandPredictor,
    DonorMetrics,
    EligibilityAssessment,
    EligibilityPredictor,
    EligibilityScore,
    ForecastService,
)
from blood_services.kernel_services import KernelServices

__all__ = [
    "BloodBankService",
    "DemandForecastRow",
    "DemandPrediction",
    "DemandPredictor",
    "DonorMetrics",
    "EligibilityAssessment",
    "EligibilityPredictor",
    "EligibilityScore",
    "ForecastService",
    "KernelServices",
    "RequestContext",
    "SYSTEM_CONTEXT",
    "bootstrap",
]
