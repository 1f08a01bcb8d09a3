"""
blood_services.forecasting -- Adapters over the predictive collaborators.

Responsibility:
    The demand-forecast and donor-eligibility models are external: the
    blood bank only depends on the ``DemandPredictor`` and
    ``EligibilityPredictor`` interfaces below.  ``ForecastService`` turns
    raw predictions into the rows and decisions callers display.

Architecture position:
    Services -- no database access, no kernel state.  Allocation and audit
    never depend on anything here.

Invariants enforced:
    - ``predict_demand`` returns exactly one row per blood type, in
      ``ALL_BLOOD_TYPES`` order, with predicted units rounded and clamped
      at zero.
    - A donor is eligible iff the model probability is strictly above the
      configured threshold.

Failure modes:
    - InvalidMonthError for a month outside 1..12.
    - Predictor exceptions propagate unchanged.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from blood_config.schema import BloodBankConfig
from blood_kernel.domain.blood_type import ALL_BLOOD_TYPES, BloodType
from blood_kernel.exceptions import InvalidMonthError
from blood_kernel.logging_config import get_logger

logger = get_logger("services.forecast")

DEFAULT_ELIGIBILITY_THRESHOLD = 0.5
DEFAULT_EXPLANATION = "Model decision."
DEMAND_MODEL = "DemandModel"
ELIGIBILITY_MODEL = "EligibilityModel"


@dataclass(frozen=True)
class DemandPrediction:
    predicted_units: float
    model_version: str | None = None


@dataclass(frozen=True)
class DonorMetrics:
    """Health metrics the eligibility model scores."""

    hb_g_dl: float
    age: int
    bp_systolic: int
    bp_diastolic: int
    days_since_last_donation: int
    conditions: tuple[str, ...] = ()

    @property
    def conditions_csv(self) -> str:
        return ",".join(self.conditions)


@dataclass(frozen=True)
class EligibilityScore:
    probability: float
    explanation: str | None = None
    model_version: str | None = None


@dataclass(frozen=True)
class DemandForecastRow:
    blood_type: BloodType
    predicted_units: int
    model_version: str


@dataclass(frozen=True)
class EligibilityAssessment:
    eligible: bool
    probability: float
    model_version: str
    explanation: str


class DemandPredictor(ABC):
    """Monthly demand model for one blood type."""

    @abstractmethod
    def predict(self, month: int, blood_type: BloodType) -> DemandPrediction:
        ...


class EligibilityPredictor(ABC):
    """Donor eligibility model."""

    @abstractmethod
    def predict(self, metrics: DonorMetrics) -> EligibilityScore:
        ...


class ForecastService:
    """Demand forecast and eligibility decisions over pluggable models."""

    def __init__(
        self,
        demand: DemandPredictor,
        eligibility: EligibilityPredictor,
        threshold: float = DEFAULT_ELIGIBILITY_THRESHOLD,
    ):
        self._demand = demand
        self._eligibility = eligibility
        self._threshold = threshold

    @classmethod
    def from_config(
        cls,
        config: BloodBankConfig,
        demand: DemandPredictor,
        eligibility: EligibilityPredictor,
    ) -> ForecastService:
        return cls(demand, eligibility, threshold=config.forecast.eligibility_threshold)

    def predict_demand(self, month: int) -> list[DemandForecastRow]:
        """
        Predicted units per blood type for ``month``.

        Raises:
            InvalidMonthError: month is not an integer in 1..12.
        """
        if isinstance(month, bool) or not isinstance(month, int) or not 1 <= month <= 12:
            raise InvalidMonthError(month)

        rows = []
        for blood_type in ALL_BLOOD_TYPES:
            prediction = self._demand.predict(month, blood_type)
            rows.append(
                DemandForecastRow(
                    blood_type=blood_type,
                    predicted_units=max(0, round(prediction.predicted_units)),
                    model_version=prediction.model_version or DEMAND_MODEL,
                )
            )

        logger.info(
            "demand_forecast",
            extra={
                "month": month,
                "total_units": sum(r.predicted_units for r in rows),
            },
        )
        return rows

    def predict_eligibility(self, metrics: DonorMetrics) -> EligibilityAssessment:
        score = self._eligibility.predict(metrics)
        explanation = (score.explanation or "").strip() or DEFAULT_EXPLANATION
        assessment = EligibilityAssessment(
            eligible=score.probability > self._threshold,
            probability=score.probability,
            model_version=score.model_version or ELIGIBILITY_MODEL,
            explanation=explanation,
        )
        logger.info(
            "eligibility_assessed",
            extra={
                "eligible": assessment.eligible,
                "probability": assessment.probability,
                "model_version": assessment.model_version,
            },
        )
        return assessment
