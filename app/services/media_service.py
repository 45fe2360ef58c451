"""
Media Service - Cloudinary signed uploads.

The browser uploads straight to Cloudinary with parameters signed here, so
file bytes never pass through the API.

Configuration (environment variables, _PROD / _STAGING suffixed):
- CLOUDINARY_CLOUD_NAME, CLOUDINARY_API_KEY, CLOUDINARY_API_SECRET
"""
import hashlib
import time
from typing import Any, Dict, Optional
from urllib.parse import quote

from app.core.config import get_cloudinary_credentials
from app.core.exceptions import ValidationError

AVATAR_FOLDER = "avatars"
AVATAR_UPLOAD_PRESET = "user_avatars"
AVATAR_MODERATION = "aws_rek"
AVATAR_TRANSFORMATION = "c_fill,g_face,w_300,h_300,q_auto,f_auto"
LISTING_PHOTO_FOLDER = "listing-photos"


def api_sign_request(params: Dict[str, Any], api_secret: str) -> str:
    """
    Cloudinary request signature.

    sha1 of the parameters sorted by name as "k=v&k2=v2", with the API
    secret appended. Empty values are not signed.
    """
    parts = []
    for key in sorted(params):
        value = params[key]
        if value is None or value == "":
            continue
        if isinstance(value, (list, tuple)):
            value = ",".join(str(v) for v in value)
        parts.append(f"{key}={value}")
    to_sign = "&".join(parts) + api_secret
    return hashlib.sha1(to_sign.encode("utf-8")).hexdigest()


def _signed_params(params: Dict[str, Any], timestamp: Optional[int] = None) -> Dict[str, Any]:
    creds = get_cloudinary_credentials()
    params = {**params, "timestamp": timestamp or int(time.time())}
    return {
        **params,
        "signature": api_sign_request(params, creds.api_secret),
        "cloud_name": creds.cloud_name,
        "api_key": creds.api_key,
    }


def avatar_upload_signature(timestamp: Optional[int] = None) -> Dict[str, Any]:
    return _signed_params(
        {
            "folder": AVATAR_FOLDER,
            "upload_preset": AVATAR_UPLOAD_PRESET,
            "moderation": AVATAR_MODERATION,
            "transformation": AVATAR_TRANSFORMATION,
        },
        timestamp,
    )


def listing_photo_upload_signature(timestamp: Optional[int] = None) -> Dict[str, Any]:
    return _signed_params({"folder": LISTING_PHOTO_FOLDER}, timestamp)


def validate_avatar_upload(
    public_id: Optional[str],
    secure_url: Optional[str],
    moderation_status: Optional[str] = None,
) -> Dict[str, str]:
    if not public_id or not secure_url:
        raise ValidationError("Missing required fields: public_id and secure_url")
    if moderation_status == "rejected":
        raise ValidationError(
            "Image was rejected by content moderation. Please choose a different image.",
            moderation_rejected=True,
        )
    if not public_id.startswith(f"{AVATAR_FOLDER}/"):
        raise ValidationError("Invalid avatar upload")
    return {"public_id": public_id, "secure_url": secure_url}


def avatar_url(public_id: str, size: int = 300, cloud_name: Optional[str] = None) -> str:
    cloud_name = cloud_name or get_cloudinary_credentials().cloud_name
    return (
        f"https://res.cloudinary.com/{cloud_name}/image/upload/"
        f"c_fill,g_face,w_{size},h_{size},q_auto,f_auto/{public_id}"
    )


def default_avatar_url(name: Optional[str] = None, size: int = 300) -> str:
    label = quote((name or "Kado").strip() or "Kado")
    return f"https://ui-avatars.com/api/?name={label}&size={size}&background=random"
