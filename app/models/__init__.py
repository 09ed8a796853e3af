from app.models.base import Base  # noqa: F401

from app.models.reference_code import ListingType, PropertyType, ListingStatus  # noqa: F401
from app.models.geo_city import GeoCity  # noqa: F401
from app.models.geo_area import GeoArea  # noqa: F401
from app.models.user import User  # noqa: F401
from app.models.user_payment import UserPayment  # noqa: F401
from app.models.listing_details import ListingDetails  # noqa: F401
from app.models.listing import Listing  # noqa: F401
from app.models.listing_image import ListingImage  # noqa: F401
from app.models.favorite import Favorite  # noqa: F401
from app.models.conversation import Conversation, Message  # noqa: F401
from app.models.property_valuation import PropertyValuation  # noqa: F401
from app.models.activity_log import ActivityLog  # noqa: F401
from app.models.outbox import OutboxEvent  # noqa: F401
