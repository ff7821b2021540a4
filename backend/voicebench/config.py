import os
import logging
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Logging configuration
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("voicebench")

# Environment variables
CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")
CALL_TIMEOUT_SECONDS = float(os.getenv("CALL_TIMEOUT_SECONDS", "60"))
JOB_MAX_CONCURRENCY = int(os.getenv("JOB_MAX_CONCURRENCY", "1"))
MAX_CONCURRENCY = int(os.getenv("MAX_CONCURRENCY", "8"))
MAX_REPETITIONS = int(os.getenv("MAX_REPETITIONS", "10"))
USD_TO_CNY_RATE = float(os.getenv("USD_TO_CNY_RATE", "7.0"))

# System-provisioned vendor credentials
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
OPENAI_TTS_API_URL = os.getenv("OPENAI_TTS_API_URL", "https://api.openai.com/v1/audio/speech")
QWEN_API_KEY = os.getenv("QWEN_API_KEY")
CARTESIA_API_KEY = os.getenv("CARTESIA_API_KEY")
MINIMAX_API_KEY = os.getenv("MINIMAX_API_KEY")
MINIMAX_TTS_API_URL = os.getenv("MINIMAX_TTS_API_URL")
MINIMAX_TTS_MODEL = os.getenv("MINIMAX_TTS_MODEL", "speech-02-turbo")
DEEPGRAM_API_KEY = os.getenv("DEEPGRAM_API_KEY")
DOUBAO_APP_ID = os.getenv("DOUBAO_APP_ID")
DOUBAO_ACCESS_TOKEN = os.getenv("DOUBAO_ACCESS_TOKEN")
DOUBAO_API_URL = os.getenv("DOUBAO_API_URL")
DOUBAO_RESOURCE_ID = os.getenv("DOUBAO_RESOURCE_ID", "volc.bigasr.auc_turbo")

# Directories and paths
DATA_DIR = Path(os.getenv("DATA_DIR", "data"))
STORAGE_AUDIO_DIR = Path(os.getenv("AUDIO_STORAGE_DIR", "storage/audio"))
DB_PATH = DATA_DIR / "voicebench.db"
USER_TEMPLATES_PATH = Path(os.getenv("USER_TEMPLATES_PATH", str(DATA_DIR / "user_templates.json")))


def ensure_directories() -> None:
    """Ensure required directories exist."""
    DATA_DIR.mkdir(parents=True, exist_ok=True)
    STORAGE_AUDIO_DIR.mkdir(parents=True, exist_ok=True)


def debug_log(msg: str) -> None:
    """Verbose engine tracing, routed through debug level."""
    logger.debug(msg)
