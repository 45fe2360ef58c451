"""
Sales Data Service - historical sale observations for graded cards.

Cards are created organically from the grading data attached to each sale.
"""
from datetime import datetime
from typing import Any, Dict, Optional

from loguru import logger
from sqlalchemy.orm import Session

from app.models.card import Card, GradingCertificate, SalesData
from app.services import psa_service
from app.services.psa_service import CertificateImages


def process_psa_sales_data(
    db: Session,
    *,
    value: float,
    date: datetime,
    psa_api_response: Dict[str, Any],
    cert_number: Optional[str] = None,
    is_auction: bool = False,
    image_url: Optional[str] = None,
    title: Optional[str] = None,
    source: Optional[str] = None,
    source_id: Optional[str] = None,
    certificate_images: Optional[CertificateImages] = None,
    skip_image_fetch: bool = False,
) -> Dict[str, Optional[str]]:
    """Record a sale backed by a PSA certificate response. Returns {cardId, salesDataId}."""
    card_data = psa_service.extract_card_data(psa_api_response)
    if card_data is None:
        logger.warning("[SalesData] could not extract card data from PSA response")
        return {"cardId": None, "salesDataId": None}

    cert_number = cert_number or psa_api_response.get("certNumber")
    images = certificate_images
    if images is None and cert_number and not skip_image_fetch:
        images = psa_service.fetch_certificate_images(cert_number)

    card = psa_service.find_or_create_card(db, card_data, images)

    certificate_id = None
    if cert_number:
        cert_data = psa_service.extract_certificate_data(psa_api_response, cert_number)
        if cert_data:
            certificate_id = psa_service.find_or_create_certificate(db, cert_data, card.id, images).id

    sale = SalesData(
        card_id=card.id,
        grading_certificate_id=certificate_id,
        grading_company=psa_service.GRADING_COMPANY,
        cert_number=cert_number,
        value=value,
        date=date,
        is_auction=is_auction,
        image_url=image_url,
        title=title,
        api_response=psa_api_response,
        source=source,
        source_id=source_id,
    )
    db.add(sale)
    db.commit()
    return {"cardId": card.id, "salesDataId": sale.id}


def process_sales_data(
    db: Session,
    *,
    grading_company: str,
    value: float,
    date: datetime,
    api_response: Optional[Dict[str, Any]] = None,
    cert_number: Optional[str] = None,
    is_auction: bool = False,
    image_url: Optional[str] = None,
    title: Optional[str] = None,
    source: Optional[str] = None,
    source_id: Optional[str] = None,
    card_name: Optional[str] = None,
    set_name: Optional[str] = None,
    card_number: Optional[str] = None,
    variety: Optional[str] = None,
    spec_id: Optional[str] = None,
) -> Dict[str, Optional[str]]:
    """Record a sale from another grading company (TAG, BGS...) using explicit card fields."""
    card = None
    if spec_id:
        card = db.query(Card).filter(Card.psa_spec_id == str(spec_id)).first()
    if card is None:
        card = Card(
            card_name=card_name,
            set_name=set_name,
            card_number=card_number,
            variety=variety,
            psa_spec_id=str(spec_id) if spec_id else None,
        )
        db.add(card)
        db.flush()

    certificate_id = None
    if cert_number:
        certificate = (
            db.query(GradingCertificate)
            .filter(
                GradingCertificate.grading_company == grading_company,
                GradingCertificate.cert_number == cert_number,
            )
            .first()
        )
        if certificate is None:
            certificate = GradingCertificate(
                grading_company=grading_company,
                cert_number=cert_number,
                psa_spec_id=str(spec_id) if spec_id else None,
            )
            db.add(certificate)
        certificate.card_id = card.id
        db.flush()
        certificate_id = certificate.id

    sale = SalesData(
        card_id=card.id,
        grading_certificate_id=certificate_id,
        grading_company=grading_company,
        cert_number=cert_number,
        value=value,
        date=date,
        is_auction=is_auction,
        image_url=image_url,
        title=title,
        api_response=api_response,
        source=source,
        source_id=source_id,
    )
    db.add(sale)
    db.commit()
    return {"cardId": card.id, "salesDataId": sale.id}
