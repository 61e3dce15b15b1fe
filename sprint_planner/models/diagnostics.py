from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field


class ValidationError(ValueError):
    """Entrada inválida ou ausente; interrompe a alocação antes de qualquer cálculo"""


class GoalGenerationFailure(RuntimeError):
    """Falha do gerador externo de objetivos; sempre recuperada com o texto local"""


class DiagnosticKind(str, Enum):
    """Tipos de diagnóstico não fatais acumulados durante a alocação"""

    CYCLE_DETECTED = "cycle_detected"
    CAPACITY_EXCEEDED = "capacity_exceeded"
    ITERATION_CAP = "iteration_cap"


class Diagnostic(BaseModel):
    """Aviso emitido pela alocação"""

    kind: DiagnosticKind
    message: str
    item_ids: List[str] = Field(default_factory=list)
    iteration: Optional[int] = None
