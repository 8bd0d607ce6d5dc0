
from app.models.user import User, UserRole
from app.models.facility import Facility, FacilityRoute, FacilityType, ApprovalRoute
from app.models.reservation import (
    Reservation, PaymentApproval, ReservationStatus, PaymentApprovalStatus, PromotionState,
)
from app.models.acknowledgement import ReservationAcknowledgement, PaymentApprovalAcknowledgement
from app.models.notification import Notification
from app.models.transaction import TransactionRecord
