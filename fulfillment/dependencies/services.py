from fastapi import BackgroundTasks, Depends
from sqlmodel import Session

from fulfillment.database import get_session
from fulfillment.dependencies.catalog import get_catalog_repository
from fulfillment.dependencies.currency import get_currency_converter
from fulfillment.services.bot_gateway_service import BotGatewayService
from fulfillment.services.contact_service import ContactService
from fulfillment.services.payment_config_service import PaymentConfigService
from fulfillment.services.purchase_service import PurchaseService


def get_purchase_service(
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session),
    catalog=Depends(get_catalog_repository),
    converter=Depends(get_currency_converter),
) -> PurchaseService:
    return PurchaseService(session, catalog=catalog, converter=converter, background_tasks=background_tasks)


def get_contact_service(
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session),
    catalog=Depends(get_catalog_repository),
) -> ContactService:
    return ContactService(session, catalog=catalog, background_tasks=background_tasks)


def get_payment_config_service(session: Session = Depends(get_session)) -> PaymentConfigService:
    return PaymentConfigService(session)


def get_bot_gateway_service(
    session: Session = Depends(get_session),
    converter=Depends(get_currency_converter),
) -> BotGatewayService:
    return BotGatewayService(session, converter=converter)
