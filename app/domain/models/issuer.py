# app/domain/models/issuer.py
from pydantic import BaseModel, ConfigDict
from typing import Optional
from datetime import datetime


class Issuer(BaseModel):
    """
    Empresa emisora. Es sólo lectura para el pipeline; la administra
    el módulo de empresas.
    """
    id: int
    ruc: str
    trade_name: str
    legal_name: str

    # Configuración SIFEN
    establishment: str = "001"
    emission_point: str = "001"
    authorization_number: str = "12345678"  # timbrado
    authorization_date: Optional[str] = None
    csc_id: str = "0001"
    csc: Optional[str] = None
    mode: str = "test"  # test | produccion

    # Certificado (sólo metadatos; el .p12 vive en disco)
    certificate_filename: Optional[str] = None
    certificate_password: Optional[str] = None  # cifrada "ivhex:cipherhex"
    certificate_active: bool = False
    certificate_expires_at: Optional[datetime] = None

    address: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    active: bool = True

    model_config = ConfigDict(from_attributes=True)

    @property
    def ruc_digits(self) -> str:
        return "".join(c for c in self.ruc if c.isdigit())
