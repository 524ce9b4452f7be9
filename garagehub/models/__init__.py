# Exposes all models to the app
from .users import User, UserRole, RateLimitCounter
from .garages import Garage, GarageStatus, Service, ServiceCategory, WEEKDAYS, DEFAULT_BUSINESS_HOURS
from .bookings import Booking, BookingStatus, BookingStatusHistory, RELEASED_STATUSES
from .reviews import Review, ReviewHelpfulVote, REVIEW_CATEGORIES
from .payments import Payment, PaymentStatus, PaymentType, PaymentMethod, GarageCreationStatus
