import logging
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from fulfillment.models.payment_config import PaymentConfig
from fulfillment.utils.result import ErrorCode, Result, failure, success

logger = logging.getLogger(__name__)


class PaymentConfigRepository:
    def __init__(self, session: Session):
        self.session = session

    def _store_error(self, operation: str, exc: Exception, **context) -> Result:
        self.session.rollback()
        details = " ".join(f"{k}={v}" for k, v in context.items())
        logger.exception(f"Payment config repository {operation} failed {details}".strip())
        return failure(f"Failed to {operation}: {exc}", ErrorCode.DATABASE_ERROR)

    def get_active(self) -> Result:
        try:
            configs = self.session.exec(
                select(PaymentConfig)
                .where(PaymentConfig.is_active == True)  # noqa: E712
                .order_by(PaymentConfig.display_order, PaymentConfig.id)
            ).all()
        except SQLAlchemyError as exc:
            return self._store_error("fetch active payment configs", exc)
        return success(list(configs))

    def get_all(self) -> Result:
        try:
            configs = self.session.exec(
                select(PaymentConfig).order_by(PaymentConfig.display_order, PaymentConfig.id)
            ).all()
        except SQLAlchemyError as exc:
            return self._store_error("fetch payment configs", exc)
        return success(list(configs))

    def get(self, config_id: int) -> Result:
        try:
            config = self.session.get(PaymentConfig, config_id)
        except SQLAlchemyError as exc:
            return self._store_error("fetch payment config", exc, config_id=config_id)
        if config is None:
            return failure("Payment configuration not found", ErrorCode.NOT_FOUND)
        return success(config)

    def create(self, data: dict) -> Result:
        try:
            config = PaymentConfig(**data)
            self.session.add(config)
            self.session.commit()
            self.session.refresh(config)
        except (SQLAlchemyError, ValueError) as exc:
            return self._store_error("create payment config", exc)

        logger.info(f"Payment config {config.id} ({config.provider_name}) created")
        return success(config)

    def update(self, config_id: int, data: dict) -> Result:
        try:
            config = self.session.get(PaymentConfig, config_id)
            if config is None:
                return failure("Payment configuration not found", ErrorCode.NOT_FOUND)

            for key, value in data.items():
                # the type of an existing method never changes
                if key in ("id", "config_type", "created_at"):
                    continue
                setattr(config, key, value)
            config.updated_at = datetime.utcnow()

            self.session.add(config)
            self.session.commit()
            self.session.refresh(config)
        except SQLAlchemyError as exc:
            return self._store_error("update payment config", exc, config_id=config_id)
        return success(config)

    def delete(self, config_id: int) -> Result:
        try:
            config = self.session.get(PaymentConfig, config_id)
            if config is None:
                return failure("Payment configuration not found", ErrorCode.NOT_FOUND)
            self.session.delete(config)
            self.session.commit()
        except SQLAlchemyError as exc:
            return self._store_error("delete payment config", exc, config_id=config_id)

        logger.info(f"Payment config {config_id} deleted")
        return success(True)
