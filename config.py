# config.py
import os
from dotenv import load_dotenv

load_dotenv()

# --- BASE DE DATOS ---
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./sifen.db")

# --- ALMACENAMIENTO ---
# Los XML firmados se guardan como ARTIFACTS_DIR/AAAA/MM/<nombre>.xml
ARTIFACTS_DIR = os.getenv("ARTIFACTS_DIR", "de_output")
# Certificados por RUC: CERTIFICATES_DIR/<ruc>/certificado.p12
CERTIFICATES_DIR = os.getenv("CERTIFICATES_DIR", "certificados")
CERTIFICATE_MASTER_KEY = os.getenv("CERTIFICATE_MASTER_KEY", "default-key-32-chars!!")

# --- CELERY / REDIS ---
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", REDIS_URL)
WORKER_CONCURRENCY = int(os.getenv("WORKER_CONCURRENCY", "4"))

INVOICE_QUEUE = "facturacion"
RENDER_QUEUE = "kude"

# Cola de facturación: 3 intentos, backoff exponencial 1s, 2s, 4s...
INVOICE_JOB_ATTEMPTS = int(os.getenv("INVOICE_JOB_ATTEMPTS", "3"))
INVOICE_JOB_BACKOFF_SECONDS = float(os.getenv("INVOICE_JOB_BACKOFF_SECONDS", "1"))
INVOICE_JOB_TIMEOUT = int(os.getenv("INVOICE_JOB_TIMEOUT", "300"))
INVOICE_KEEP_COMPLETED = 100
INVOICE_KEEP_FAILED = 10000

# Cola de KUDE: menos intentos, backoff fijo, timeout más corto
RENDER_JOB_ATTEMPTS = int(os.getenv("RENDER_JOB_ATTEMPTS", "2"))
RENDER_JOB_BACKOFF_SECONDS = float(os.getenv("RENDER_JOB_BACKOFF_SECONDS", "2"))
RENDER_JOB_TIMEOUT = int(os.getenv("RENDER_JOB_TIMEOUT", "120"))
RENDER_KEEP_COMPLETED = 50
RENDER_KEEP_FAILED = 1000

# Un job activo sin heartbeat por más de este tiempo se considera estancado.
# Debe superar el timeout duro del job más largo.
STALLED_JOB_TIMEOUT = int(os.getenv("STALLED_JOB_TIMEOUT", str(INVOICE_JOB_TIMEOUT + 30)))
STALLED_CHECK_INTERVAL = int(os.getenv("STALLED_CHECK_INTERVAL", "30"))
FAILED_MONITOR_INTERVAL = int(os.getenv("FAILED_MONITOR_INTERVAL", "60"))

# --- SIFEN ---
SIFEN_URLS = {
    "test": os.getenv("SIFEN_URL_TEST", "https://sifen-test.set.gov.py/de/ws/sync/recibe.wsdl"),
    "produccion": os.getenv("SIFEN_URL_PROD", "https://sifen.set.gov.py/de/ws/sync/recibe.wsdl"),
}
SIFEN_TIMEOUT = int(os.getenv("SIFEN_TIMEOUT", "30"))

QR_BASE_URLS = {
    "test": "https://ekuatia.set.gov.py/consultas-test/qr?",
    "produccion": "https://ekuatia.set.gov.py/consultas/qr?",
}

# Tabla de códigos de retorno. Puede reemplazarse con un JSON
# {"accepted": [...], "pending": [...], "rejected": [...], "error": [...]}
SIFEN_RESULT_CODES_FILE = os.getenv("SIFEN_RESULT_CODES_FILE")
DEFAULT_RESULT_CODES = {
    "accepted": ["0000", "0", "2", "0421"],
    "pending": ["3", "0003"],
    "rejected": ["1000", "1001", "1002", "1003", "1004", "1"],
}

# Código reservado cuando no se obtuvo respuesta de SIFEN
NO_CONNECTION_CODE = "SIN_CONEXION"
