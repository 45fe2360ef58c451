"""
Certificates Router - PSA certificate lookup.
Endpoints: /api/certificates/*
"""
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.db.deps import get_db
from app.services import psa_service

router = APIRouter(prefix="/api/certificates", tags=["certificates"])


class LookupIn(BaseModel):
    certNumber: Optional[str] = None


@router.get("/psa/lookup")
def lookup_get(certNumber: Optional[str] = None, db: Session = Depends(get_db)):
    return psa_service.lookup_and_store(db, certNumber)


@router.post("/psa/lookup")
def lookup_post(payload: LookupIn, db: Session = Depends(get_db)):
    return psa_service.lookup_and_store(db, payload.certNumber)
