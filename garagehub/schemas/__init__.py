from .users import *
from .garages import *
from .bookings import *
from .reviews import *
from .payments import *
