from app.models.booking import Booking
from app.models.waitlist import WaitlistEntry
from app.models.subscription import Subscription
from app.models.push_token import PushToken

__all__ = ["Booking", "WaitlistEntry", "Subscription", "PushToken"]
