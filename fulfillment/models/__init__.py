from fulfillment.models.user import User
from fulfillment.models.book import Book
from fulfillment.models.bundle import Bundle, BundleBook
from fulfillment.models.purchase import Purchase
from fulfillment.models.purchase_request import PurchaseRequest
from fulfillment.models.admin_contact import AdminContactInfo
from fulfillment.models.payment_config import PaymentConfig, PaymentConfigType
from fulfillment.models.library import LibraryEntry, LibraryStatus
from fulfillment.models.notifications import Notification

# add ALL models here
