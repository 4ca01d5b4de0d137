# main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Importamos los routers de la capa de infraestructura
from app.infrastructure.api.routers import invoices_router
from app.infrastructure.persistence.database import init_db

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - [%(funcName)s] - %(message)s')


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


app = FastAPI(
    title="API de Facturación Electrónica SIFEN",
    description="Recepción de facturas y procesamiento asíncrono: generación, firma, envío a SIFEN y KUDE.",
    version="1.0.0",
    lifespan=lifespan,
)

# Configuración de CORS
origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173"
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(invoices_router.router)


@app.get("/", tags=["Health Check"])
def read_root():
    return {"status": "ok", "message": "API de facturación electrónica SIFEN"}
