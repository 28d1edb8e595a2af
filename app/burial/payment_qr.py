from __future__ import annotations

import logging

from app.core.errors import ValidationError
from app.core.extensions import db
from app.core.models import PaymentSetting, utcnow
from app.core.storage import LocalObjectStorage, default_storage

logger = logging.getLogger(__name__)

ALLOWED_QR_EXTENSIONS = {".png", ".jpg", ".jpeg", ".webp"}


def current_payment_setting() -> PaymentSetting | None:
    return PaymentSetting.query.order_by(PaymentSetting.id.desc()).first()


def update_payment_qr(
    upload: tuple[bytes, str] | None,
    user_id: int | None,
    storage: LocalObjectStorage | None = None,
) -> PaymentSetting:
    if upload is None:
        raise ValidationError("Imej QR diperlukan")
    data, extension = upload
    if extension not in ALLOWED_QR_EXTENSIONS:
        raise ValidationError("Imej QR mesti PNG, JPG atau WEBP")
    storage = storage or default_storage()

    setting = current_payment_setting()
    if setting is None:
        setting = PaymentSetting()
        db.session.add(setting)
    previous_path = setting.qr_image_path
    path = f"payment_qr/qr-{utcnow():%Y%m%d%H%M%S}{extension}"
    url = storage.upload(path, data)
    setting.qr_image_url = url
    setting.qr_image_path = path
    setting.updated_by = user_id
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        storage.remove(path)
        raise
    if previous_path and previous_path != path:
        storage.remove(previous_path)
    logger.info("Payment QR replaced by user %s", user_id)
    return setting
