# app/infrastructure/persistence/issuer_repository_adapter.py
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.domain.models.issuer import Issuer
from app.domain.ports.issuer_repository import IssuerRepository
from .models import Empresa


def to_domain(row: Empresa) -> Issuer:
    return Issuer(
        id=row.id,
        ruc=row.ruc,
        trade_name=row.nombre_fantasia,
        legal_name=row.razon_social,
        establishment=row.codigo_establecimiento,
        emission_point=row.codigo_punto_emision,
        authorization_number=row.numero_timbrado,
        authorization_date=row.fecha_timbrado,
        csc_id=row.id_csc,
        csc=row.csc,
        mode=row.modo,
        certificate_filename=row.certificado_nombre_archivo,
        certificate_password=row.certificado_contrasena,
        certificate_active=bool(row.certificado_activo),
        certificate_expires_at=row.certificado_vencimiento,
        address=row.direccion,
        phone=row.telefono,
        email=row.email,
        active=bool(row.activo),
    )


def ruc_variants(ruc: str) -> list:
    """'80012345-1' y '800123451' refieren a la misma empresa."""
    ruc = ruc.strip()
    digits = ruc.replace("-", "")
    variants = [ruc, digits]
    if "-" not in ruc and len(digits) > 1:
        variants.append(f"{digits[:-1]}-{digits[-1]}")
    return list(dict.fromkeys(variants))


class SQLAlchemyIssuerRepository(IssuerRepository):
    def __init__(self, db: Session):
        self.db = db

    def get(self, issuer_id: int) -> Optional[Issuer]:
        row = self.db.get(Empresa, issuer_id)
        return to_domain(row) if row else None

    def find_by_ruc(self, ruc: str) -> Optional[Issuer]:
        row = self.db.execute(
            select(Empresa).where(Empresa.ruc.in_(ruc_variants(ruc)))
        ).scalars().first()
        return to_domain(row) if row else None
