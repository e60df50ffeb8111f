"""Unified error codes and custom exceptions.

Error code ranges:
  1xxx: Auth/User
  2xxx: Booking/Appointment
  3xxx: Confirmation/Dispute
  4xxx: Cycle
  5xxx: Payout
  6xxx: Fee charge/Payment method
  9xxx: System

State-conflict errors use HTTP 409 so retried requests can tell "already done"
apart from a rejected input.
"""


class AppError(Exception):
    """Base application error."""

    def __init__(
        self,
        code: int,
        message: str,
        http_status: int = 500,
    ) -> None:
        self.code = code
        self.message = message
        self.http_status = http_status
        super().__init__(message)


# --- 1xxx: Auth/User ---

class InvalidCredentialsError(AppError):
    def __init__(self) -> None:
        super().__init__(1003, "Invalid or expired token", 401)


class AccountDisabledError(AppError):
    def __init__(self) -> None:
        super().__init__(1004, "Account is disabled", 403)


class AdminRequiredError(AppError):
    def __init__(self) -> None:
        super().__init__(1006, "Admin access required", 403)


class CronUnauthorizedError(AppError):
    def __init__(self) -> None:
        super().__init__(1007, "Invalid scheduler credentials", 401)


# --- 2xxx: Booking/Appointment ---

class AppointmentNotFoundError(AppError):
    def __init__(self, appointment_id: str) -> None:
        super().__init__(2001, f"Appointment not found: {appointment_id}", 404)


class AppointmentNotCompletedError(AppError):
    def __init__(self, appointment_id: str, status: str) -> None:
        super().__init__(
            2002,
            f"Appointment {appointment_id} is not completed (status={status})",
            422,
        )


class SlotUnavailableError(AppError):
    def __init__(self, slot_id: str) -> None:
        super().__init__(2003, f"Availability slot is not bookable: {slot_id}", 409)


class ProfessionalNotFoundError(AppError):
    def __init__(self, ref: str) -> None:
        super().__init__(2004, f"Professional not found: {ref}", 404)


class ProfessionalBlockedError(AppError):
    def __init__(self, professional_id: str, reason: str | None) -> None:
        super().__init__(
            2005,
            f"Professional {professional_id} cannot accept appointments: "
            f"{reason or 'outstanding platform fees'}",
            403,
        )


class DisputeNotAllowedError(AppError):
    def __init__(self, appointment_id: str, detail: str) -> None:
        super().__init__(
            2006, f"Cannot dispute appointment {appointment_id}: {detail}", 409
        )


class NotAppointmentPartyError(AppError):
    def __init__(self, appointment_id: str) -> None:
        super().__init__(
            2007, f"Caller is not a party to appointment {appointment_id}", 403
        )


# --- 3xxx: Confirmation/Dispute ---

class ConfirmationNotFoundError(AppError):
    def __init__(self, ref: str) -> None:
        super().__init__(3001, f"Confirmation not found: {ref}", 404)


class NotConfirmationPartyError(AppError):
    def __init__(self, confirmation_id: str, role: str) -> None:
        super().__init__(
            3002,
            f"Caller is not the {role} of confirmation {confirmation_id}",
            403,
        )


class ConfirmationAlreadyResolvedError(AppError):
    def __init__(self, confirmation_id: str, resolution: str) -> None:
        super().__init__(
            3003,
            f"Confirmation {confirmation_id} is already {resolution}",
            409,
        )


class ConfirmationNotDisputedError(AppError):
    def __init__(self, confirmation_id: str, resolution: str) -> None:
        super().__init__(
            3004,
            f"Confirmation {confirmation_id} is not disputed (resolution={resolution})",
            409,
        )


class InvalidResolutionError(AppError):
    def __init__(self, resolution: str) -> None:
        super().__init__(3005, f"Invalid dispute resolution: {resolution}", 422)


# --- 4xxx: Cycle ---

class CycleNotFoundError(AppError):
    def __init__(self, cycle_id: str) -> None:
        super().__init__(4001, f"Cycle not found: {cycle_id}", 404)


class CycleNotProcessingError(AppError):
    def __init__(self, cycle_id: str, status: str) -> None:
        super().__init__(
            4002, f"Cycle {cycle_id} is not processing (status={status})", 409
        )


class CycleStillActiveError(AppError):
    def __init__(self, cycle_id: str) -> None:
        super().__init__(
            4003, f"Cycle {cycle_id} is still active; no money movement allowed", 409
        )


# --- 5xxx: Payout ---

class PayoutNotFoundError(AppError):
    def __init__(self, payout_id: str) -> None:
        super().__init__(5001, f"Payout not found: {payout_id}", 404)


class RefundFailedError(AppError):
    def __init__(self, appointment_id: str, detail: str) -> None:
        super().__init__(
            5002, f"Refund for appointment {appointment_id} did not succeed: {detail}", 502
        )


# --- 6xxx: Fee charge/Payment method ---

class FeeChargeNotFoundError(AppError):
    def __init__(self, fee_charge_id: str) -> None:
        super().__init__(6001, f"Fee charge not found: {fee_charge_id}", 404)


class FeeChargeNotWaivableError(AppError):
    def __init__(self, fee_charge_id: str, status: str) -> None:
        super().__init__(
            6002, f"Fee charge {fee_charge_id} cannot be waived (status={status})", 409
        )


class PaymentMethodNotFoundError(AppError):
    def __init__(self, professional_id: str) -> None:
        super().__init__(
            6003, f"No payment method on file for professional {professional_id}", 404
        )


class OutstandingFeesError(AppError):
    def __init__(self, pending_cents: int) -> None:
        super().__init__(
            6004,
            f"Payment method cannot be removed while {pending_cents} cents of fees are outstanding",
            409,
        )


class InvalidPaymentMethodError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(6005, f"Invalid payment method: {detail}", 422)


# --- 9xxx: System ---

class InternalError(AppError):
    def __init__(self, detail: str = "Internal server error") -> None:
        super().__init__(9002, detail, 500)


class PipelineConfigError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(9003, f"Pipeline misconfigured: {detail}", 500)


class PipelineAlreadyRunningError(AppError):
    def __init__(self, trigger: str, request_id: str) -> None:
        super().__init__(
            9004, f"Pipeline run {trigger}/{request_id} is already in progress", 409
        )
