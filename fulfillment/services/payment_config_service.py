import logging

from pydantic import ValidationError
from sqlmodel import Session

from fulfillment.models.payment_config import PaymentConfig
from fulfillment.repositories.payment_config_repository import PaymentConfigRepository
from fulfillment.schemas.payment_config_schemas import (
    PaymentConfigCreate,
    PaymentConfigUpdate,
    PaymentInstruction,
)
from fulfillment.utils.result import ErrorCode, Result, failure, success

logger = logging.getLogger(__name__)


def to_instruction(config: PaymentConfig) -> PaymentInstruction:
    return PaymentInstruction(
        id=config.id,
        type=config.config_type,
        provider_name=config.provider_name,
        account_number=config.account_number,
        account_name=config.account_name,
        instructions=config.instructions or "",
        display_order=config.display_order,
    )


def _validation_failure(exc: ValidationError) -> Result:
    first = exc.errors()[0]
    field = ".".join(str(p) for p in first.get("loc", ()))
    return failure(f"{field}: {first.get('msg')}", ErrorCode.VALIDATION_ERROR)


class PaymentConfigService:
    """Where buyers send money: bank accounts and mobile-money wallets."""

    def __init__(self, session: Session):
        self.repository = PaymentConfigRepository(session)

    def get_active_payment_methods(self) -> Result:
        result = self.repository.get_active()
        if not result.success:
            return result
        return success([to_instruction(c) for c in result.data])

    def get_all_payment_configs(self) -> Result:
        return self.repository.get_all()

    def create_payment_config(self, data) -> Result:
        try:
            payload = data if isinstance(data, PaymentConfigCreate) else PaymentConfigCreate(**data)
        except ValidationError as exc:
            return _validation_failure(exc)
        return self.repository.create(payload.model_dump())

    def update_payment_config(self, config_id: int, data) -> Result:
        if isinstance(data, dict) and "config_type" in data:
            return failure("config_type cannot be changed", ErrorCode.VALIDATION_ERROR)
        try:
            payload = data if isinstance(data, PaymentConfigUpdate) else PaymentConfigUpdate(**data)
        except ValidationError as exc:
            return _validation_failure(exc)
        return self.repository.update(config_id, payload.model_dump(exclude_unset=True))

    def delete_payment_config(self, config_id: int) -> Result:
        return self.repository.delete(config_id)

    def toggle_payment_config(self, config_id: int) -> Result:
        current = self.repository.get(config_id)
        if not current.success:
            return current
        return self.repository.update(config_id, {"is_active": not current.data.is_active})

