"""
PSA Service - certificate lookup against the PSA public API.

Configuration (environment variables, _PROD / _STAGING suffixed):
- PSA_API_KEY: Bearer token for api.psacard.com
- PSA_API_BASE: API base URL (default https://api.psacard.com)

Lookups feed the Card / GradingCertificate reference tables. A Card is
keyed by PSA spec id; a GradingCertificate by (grading_company, cert_number).
"""
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import httpx
from loguru import logger
from sqlalchemy.orm import Session

from app.core.config import PSA_API_BASE, get_psa_api_key, pick_env
from app.core.exceptions import KadoError, NotFoundError, UpstreamError, ValidationError
from app.models.card import Card, GradingCertificate

HTTP_TIMEOUT = 15.0
GRADING_COMPANY = "PSA"


@dataclass
class CertificateImages:
    front_image_url: Optional[str] = None
    back_image_url: Optional[str] = None

    @property
    def any(self) -> bool:
        return bool(self.front_image_url or self.back_image_url)


def normalize_cert_number(cert_number: Optional[str]) -> str:
    return re.sub(r"[\s-]", "", (cert_number or "").strip())


def _headers() -> Dict[str, str]:
    return {
        "Authorization": f"Bearer {get_psa_api_key()}",
        "Accept": "application/json",
    }


def lookup_certificate(cert_number: str) -> Dict[str, Any]:
    """Fetch certificate data. Raises NotFoundError / UpstreamError."""
    normalized = normalize_cert_number(cert_number)
    if not normalized:
        raise ValidationError("certNumber is required")

    endpoint = pick_env("PSA_API_ENDPOINT") or "/publicapi/cert/GetByCertNumber/{certNumber}"
    url = f"{PSA_API_BASE}{endpoint.replace('{certNumber}', normalized)}"

    try:
        response = httpx.get(url, headers=_headers(), timeout=HTTP_TIMEOUT)
    except httpx.HTTPError as e:
        raise UpstreamError(str(e), service="psa")

    if response.status_code == 404:
        raise NotFoundError("Certificate not found")
    if response.status_code >= 400:
        raise UpstreamError(f"PSA API error: {response.text}", service="psa", status_code=response.status_code)

    data = response.json()
    if isinstance(data, dict) and not data.get("certNumber"):
        data["certNumber"] = normalized
    return data


def fetch_certificate_images(cert_number: str) -> CertificateImages:
    """Front/back scans for a certificate. Failures yield no images."""
    normalized = normalize_cert_number(cert_number)
    if not normalized:
        return CertificateImages()

    try:
        response = httpx.get(
            f"{PSA_API_BASE}/publicapi/cert/GetImagesByCertNumber/{normalized}",
            headers=_headers(),
            timeout=HTTP_TIMEOUT,
        )
    except (httpx.HTTPError, KadoError) as e:
        logger.warning(f"[PSA] image fetch failed for cert {normalized}: {e}")
        return CertificateImages()

    if response.status_code >= 400:
        logger.warning(f"[PSA] image fetch for cert {normalized} returned {response.status_code}")
        return CertificateImages()

    images = CertificateImages()
    for image in response.json() or []:
        if image.get("IsFrontImage"):
            images.front_image_url = image.get("ImageURL")
        else:
            images.back_image_url = image.get("ImageURL")
    return images


# =============================================================================
# PARSING
# =============================================================================

def _response_root(response: Any) -> Dict[str, Any]:
    if not isinstance(response, dict):
        return {}
    nested = response.get("PSACert")
    return nested if isinstance(nested, dict) else response


def parse_brand(brand: Optional[str]) -> Optional[str]:
    """'POKEMON JAPANESE SWORD & SHIELD' -> 'Japanese Sword & Shield'."""
    if not brand:
        return None
    parsed = re.sub(r"^POKEMON\s+", "", brand, flags=re.IGNORECASE)
    parsed = re.sub(r"^PFL\s+", "", parsed, flags=re.IGNORECASE)
    parsed = re.sub(r"^EN-", "", parsed, flags=re.IGNORECASE)
    words = [w for w in re.split(r"[\s-]+", parsed) if w]
    return " ".join(w[:1].upper() + w[1:].lower() for w in words) or None


def parse_grade(response: Dict[str, Any]) -> Optional[float]:
    grade = response.get("CardGrade")
    if grade is not None:
        try:
            return float(grade)
        except (TypeError, ValueError):
            pass

    description = response.get("GradeDescription")
    if description:
        match = re.search(r"(\d+(\.\d+)?)", description)
        if match:
            return float(match.group(1))
    return None


def _spec_id(root: Dict[str, Any]) -> Optional[str]:
    return str(root["SpecID"]) if root.get("SpecID") else None


def extract_card_data(response: Any) -> Optional[Dict[str, Any]]:
    root = _response_root(response)
    card_name = root.get("Subject") or None
    spec_id = _spec_id(root)
    if not spec_id and not card_name:
        return None
    return {
        "card_name": card_name,
        "set_name": parse_brand(root.get("Brand")) or root.get("Brand"),
        "card_number": str(root["CardNumber"]) if root.get("CardNumber") else None,
        "variety": root.get("Variety") or None,
        "psa_spec_id": spec_id,
        "image_grade": parse_grade(root),
    }


def extract_certificate_data(response: Any, cert_number: Optional[str] = None) -> Optional[Dict[str, Any]]:
    root = _response_root(response)
    resolved = normalize_cert_number(cert_number) or str(root.get("CertNumber") or root.get("certNumber") or "")
    if not resolved:
        return None
    return {
        "grading_company": GRADING_COMPANY,
        "cert_number": resolved,
        "grade": parse_grade(root),
        "grade_label": root.get("GradeDescription"),
        "psa_spec_id": _spec_id(root),
    }


# =============================================================================
# PERSISTENCE
# =============================================================================

def find_or_create_card(
    db: Session,
    card_data: Dict[str, Any],
    images: Optional[CertificateImages] = None,
    game_type: str = "POKEMON",
) -> Card:
    """
    Card by PSA spec id, created when missing.

    Images from a higher-graded slab replace the card's current images.
    """
    images = images or CertificateImages()
    incoming_grade = card_data.get("image_grade")

    card = None
    if card_data.get("psa_spec_id"):
        card = db.query(Card).filter(Card.psa_spec_id == card_data["psa_spec_id"]).first()

    if card is not None:
        better_scan = card.highest_image_grade is None or (
            incoming_grade is not None and incoming_grade > card.highest_image_grade
        )
        if images.any and better_scan:
            card.front_image_url = images.front_image_url or card.front_image_url
            card.back_image_url = images.back_image_url or card.back_image_url
            card.highest_image_grade = incoming_grade if incoming_grade is not None else card.highest_image_grade
        db.flush()
        return card

    card = Card(
        game_type=game_type,
        card_name=card_data.get("card_name"),
        set_name=card_data.get("set_name"),
        card_number=card_data.get("card_number"),
        variety=card_data.get("variety"),
        psa_spec_id=card_data.get("psa_spec_id"),
        front_image_url=images.front_image_url,
        back_image_url=images.back_image_url,
        highest_image_grade=incoming_grade,
    )
    db.add(card)
    db.flush()
    return card


def find_or_create_certificate(
    db: Session,
    cert_data: Dict[str, Any],
    card_id: Optional[str],
    images: Optional[CertificateImages] = None,
) -> GradingCertificate:
    """Certificate by (company, cert number). Existing rows only get missing fields filled."""
    images = images or CertificateImages()
    certificate = (
        db.query(GradingCertificate)
        .filter(
            GradingCertificate.grading_company == cert_data["grading_company"],
            GradingCertificate.cert_number == cert_data["cert_number"],
        )
        .first()
    )

    if certificate is None:
        certificate = GradingCertificate(
            grading_company=cert_data["grading_company"],
            cert_number=cert_data["cert_number"],
            grade=cert_data.get("grade"),
            grade_label=cert_data.get("grade_label"),
            psa_spec_id=cert_data.get("psa_spec_id"),
            card_id=card_id,
            front_image_url=images.front_image_url,
            back_image_url=images.back_image_url,
        )
        db.add(certificate)
    else:
        if certificate.grade is None:
            certificate.grade = cert_data.get("grade")
        if not certificate.grade_label:
            certificate.grade_label = cert_data.get("grade_label")
        if not certificate.card_id:
            certificate.card_id = card_id
        if certificate.psa_spec_id is None:
            certificate.psa_spec_id = cert_data.get("psa_spec_id")
        if not certificate.front_image_url:
            certificate.front_image_url = images.front_image_url
        if not certificate.back_image_url:
            certificate.back_image_url = images.back_image_url

    db.flush()
    return certificate


def find_or_create_from_certificate(
    db: Session,
    response: Dict[str, Any],
    cert_number: str,
    images: Optional[CertificateImages] = None,
) -> Tuple[Optional[Card], Optional[GradingCertificate]]:
    card = None
    card_data = extract_card_data(response)
    if card_data:
        card = find_or_create_card(db, card_data, images)

    certificate = None
    cert_data = extract_certificate_data(response, cert_number)
    if cert_data:
        certificate = find_or_create_certificate(db, cert_data, card.id if card else None, images)
    return card, certificate


def lookup_and_store(db: Session, raw_cert_number: Optional[str]) -> Dict[str, Any]:
    """Look up a cert, upsert Card + GradingCertificate, and fill in missing scans."""
    cert_number = normalize_cert_number(raw_cert_number)
    if not cert_number:
        raise ValidationError("certNumber is required")

    psa_data = lookup_certificate(cert_number)
    card, certificate = find_or_create_from_certificate(db, psa_data, cert_number)

    needs_images = (
        (card is not None and not (card.front_image_url and card.back_image_url))
        or (certificate is not None and not (certificate.front_image_url and certificate.back_image_url))
    )
    if needs_images:
        images = fetch_certificate_images(cert_number)
        if images.any:
            for row in (card, certificate):
                if row is None:
                    continue
                row.front_image_url = row.front_image_url or images.front_image_url
                row.back_image_url = row.back_image_url or images.back_image_url

    db.commit()
    return {
        "success": True,
        "psaData": psa_data,
        "cardId": card.id if card else None,
        "card": card.to_api_dict() if card else None,
        "certificateId": certificate.id if certificate else None,
        "certificate": certificate.to_api_dict() if certificate else None,
    }
