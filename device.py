"""
Resolución del dispositivo serie de la CLI CBS: fija el primero presente de una lista de candidatos.
"""

import logging
import os
from typing import Callable, Iterable

logger = logging.getLogger(__name__)


class DeviceResolver:
    """
    Mantiene el dispositivo fijado mientras siga presente.
    Si desaparece, re-prueba los candidatos en orden en la próxima resolución (sin polling).
    """

    def __init__(self, candidates: Iterable[str], probe: Callable[[str], bool] = os.path.exists) -> None:
        self.candidates = list(candidates)
        self.probe = probe
        self.pinned: str | None = None

    def resolve(self) -> str | None:
        if self.pinned is not None and self.probe(self.pinned):
            return self.pinned

        previous = self.pinned
        self.pinned = None
        for candidate in self.candidates:
            if self.probe(candidate):
                self.pinned = candidate
                if previous is None:
                    logger.info("Dispositivo CBS fijado: %s", candidate)
                else:
                    logger.info("Dispositivo CBS %s ausente, usando %s", previous, candidate)
                return candidate

        logger.warning("Ningún dispositivo CBS presente (candidatos: %s)", ", ".join(self.candidates))
        return None
