from app.db.session import Base
from app.models.user import User
from app.models.facility import Facility, FacilityRoute
from app.models.reservation import Reservation, PaymentApproval
from app.models.acknowledgement import ReservationAcknowledgement, PaymentApprovalAcknowledgement
from app.models.notification import Notification
from app.models.transaction import TransactionRecord
