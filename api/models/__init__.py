from models.customer import Customer
from models.restaurant import Restaurant, Listing
from models.rider import Rider, RiderMetaData
from models.admin import Admin
from models.payment import PaymentLog
from models.order import DraftOrder, LiveOrder, PastOrder, OrderEvent
from models.settlement import RestaurantSettlement
from models.app_config import AppAlert, AppVersion

__all__ = [
    "Customer", "Restaurant", "Listing", "Rider", "RiderMetaData", "Admin",
    "PaymentLog", "DraftOrder", "LiveOrder", "PastOrder", "OrderEvent",
    "RestaurantSettlement", "AppAlert", "AppVersion",
]
