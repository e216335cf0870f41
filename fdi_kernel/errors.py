"""
Error kinds raised by the flight-delay insurance kernel.

Every rejected operation surfaces one of these and leaves policy state unchanged.
"""


class FlightInsuranceError(Exception):
    """Base class for all kernel errors."""

    kind = "flight_insurance_error"

    def __init__(self, message: str = ""):
        super().__init__(message or self.kind)
        self.message = message or self.kind


class InvalidSchedule(FlightInsuranceError):
    """Scheduled arrival is not after scheduled departure."""

    kind = "invalid_schedule"


class IncorrectPremium(FlightInsuranceError):
    """Payment does not equal the configured premium."""

    kind = "incorrect_premium"


class PolicyNotFound(FlightInsuranceError):
    kind = "policy_not_found"


class PolicyNotActive(FlightInsuranceError):
    """
    Mutation attempted on a terminal policy.

    Expected and recoverable: callers should stop polling the policy.
    """

    kind = "policy_not_active"


class Unauthorized(FlightInsuranceError):
    kind = "unauthorized"


class SettlementFailure(FlightInsuranceError):
    """A payout or withdrawal transfer did not complete."""

    kind = "settlement_failure"
