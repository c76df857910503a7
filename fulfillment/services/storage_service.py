import logging
import time
from functools import lru_cache

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from fastapi import UploadFile
from slugify import slugify

from fulfillment.config import settings

logger = logging.getLogger(__name__)

ALLOWED_PROOF_TYPES = {"image/jpeg", "image/png", "image/webp", "application/pdf"}


class StorageError(Exception):
    pass


@lru_cache(maxsize=1)
def get_s3_client():
    return boto3.client(
        "s3",
        endpoint_url=f"https://{settings.r2_account_id}.r2.cloudflarestorage.com",
        aws_access_key_id=settings.r2_access_key_id,
        aws_secret_access_key=settings.r2_secret_access_key,
        region_name="auto",
    )


def payment_proof_key(purchase_id: int, reference: str, filename: str) -> str:
    ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else "bin"
    return f"payment_proofs/{purchase_id}/{slugify(reference or str(purchase_id))}_{int(time.time())}.{ext}"


def upload_payment_proof(file: UploadFile, purchase_id: int, reference: str) -> str:
    """Store an uploaded proof privately and return its object key."""
    if file.content_type not in ALLOWED_PROOF_TYPES:
        raise StorageError(f"Unsupported proof type: {file.content_type}")

    key = payment_proof_key(purchase_id, reference, file.filename or "proof")
    try:
        get_s3_client().upload_fileobj(
            file.file,
            settings.r2_bucket_name,
            key,
            ExtraArgs={"ContentType": file.content_type, "ACL": "private"},
        )
    except (BotoCoreError, ClientError) as exc:
        logger.exception(f"Failed to upload payment proof for purchase {purchase_id}")
        raise StorageError(str(exc)) from exc
    return key


def delete_payment_proof(key: str) -> None:
    try:
        get_s3_client().delete_object(Bucket=settings.r2_bucket_name, Key=key)
    except (BotoCoreError, ClientError):
        logger.warning(f"Could not delete payment proof {key}")


def to_presigned_url(key: str, expires=3600):
    return get_s3_client().generate_presigned_url(
        "get_object",
        Params={"Bucket": settings.r2_bucket_name, "Key": key},
        ExpiresIn=expires,
    )
