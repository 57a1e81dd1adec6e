'''
Logger centralisé du service de recherche d'annonces (Loguru).

Console colorée + fichiers rotatifs par niveau dans `settings.LOG_DIR`.
Utilisation : `from app.logger import logger`.
'''

import os
import sys
from loguru import logger

from app.config import settings

LOG_FORMAT_CONSOLE = (
    "<white>{time:YYYY-MM-DD HH:mm:ss.SSS}</white> | "
    "<level>{level: <8}</level> | "
    "<light-black>{name}:{function}:{line}</light-black> - "
    "<level><b>{message}</b></level>"
)
LOG_FORMAT_FILE = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
    "{level: <8} | "
    "{name}:{function}:{line} - "
    "{message}"
)

# Rotation journalière, conservation de 30 jours, compression
_FILE_OPTIONS = {
    "format": LOG_FORMAT_FILE,
    "rotation": "00:00",
    "retention": "30 days",
    "compression": "zip",
    "encoding": "utf-8",
}


def configure_logging(log_dir: str = settings.LOG_DIR, level: str = settings.LOG_LEVEL):
    """(Re)configure les handlers Loguru ; appelé une fois à l'import."""
    os.makedirs(log_dir, exist_ok=True)

    # Supprimer le handler par défaut pour éviter les doublons
    logger.remove()

    logger.add(
        sys.stderr,
        level=level,
        format=LOG_FORMAT_CONSOLE,
        colorize=True,
        backtrace=True,
        diagnose=False
    )

    logger.add(
        os.path.join(log_dir, "debug.log"),
        level="DEBUG",
        filter=lambda record: record["level"].name == "DEBUG",
        **_FILE_OPTIONS
    )
    logger.add(
        os.path.join(log_dir, "info.log"),
        level="INFO",
        filter=lambda record: record["level"].name in ("INFO", "WARNING"),
        **_FILE_OPTIONS
    )
    # diagnose=False : les filtres de recherche contiennent des données client
    logger.add(
        os.path.join(log_dir, "error.log"),
        level="ERROR",
        backtrace=True,
        diagnose=False,
        **_FILE_OPTIONS
    )


configure_logging()
