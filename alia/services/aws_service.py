"""S3 storage for exam images."""
from __future__ import annotations

import time
from typing import Optional, Tuple
from urllib.parse import quote

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from flask import current_app
from werkzeug.utils import secure_filename

from alia.domain import ExamImage
from alia.errors import StorageError


def storage_ready() -> Tuple[bool, str]:
    bucket = (current_app.config.get("AWS_S3_BUCKET") or "").strip()
    region = (current_app.config.get("AWS_REGION") or "").strip()
    if not bucket:
        return False, "AWS_S3_BUCKET not set"
    if not region:
        return False, "AWS_REGION not set"
    return True, ""


def s3_client():
    region = (current_app.config.get("AWS_REGION") or "").strip() or None
    return boto3.client("s3", region_name=region)


def exam_image_key(user_id, filename: str, now_ms: Optional[int] = None) -> str:
    """<userId>/<epoch-millis>_<filename>"""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    safe = secure_filename(filename or "") or "exame"
    return f"{user_id}/{now_ms}_{safe}"


def public_url(key: str) -> str:
    base = (current_app.config.get("AWS_S3_PUBLIC_URL") or "").strip().rstrip("/")
    if not base:
        bucket = current_app.config["AWS_S3_BUCKET"].strip()
        region = current_app.config["AWS_REGION"].strip()
        base = f"https://{bucket}.s3.{region}.amazonaws.com"
    return f"{base}/{quote(key)}"


def upload_exam_image(user_id, image: ExamImage) -> str:
    """Upload the exam image and return its public URL."""
    ok, msg = storage_ready()
    if not ok:
        current_app.logger.error("Image storage unavailable: %s", msg)
        raise StorageError()

    key = exam_image_key(user_id, image.filename)
    try:
        s3_client().put_object(
            Bucket=current_app.config["AWS_S3_BUCKET"].strip(),
            Key=key,
            Body=image.data,
            ContentType=image.content_type,
        )
    except (BotoCoreError, ClientError) as e:
        current_app.logger.exception("Error uploading image %s: %s", key, e)
        raise StorageError() from e

    return public_url(key)
