from datetime import date, datetime
from typing import Dict, Optional
from pydantic import BaseModel, Field, field_validator, model_validator


def _parse_date(v):
    """Converte uma string YYYY-MM-DD em date, aceitando date/datetime já prontos"""
    if isinstance(v, datetime):
        return v.date()
    if isinstance(v, date):
        return v
    try:
        return datetime.strptime(v, "%Y-%m-%d").date()
    except (TypeError, ValueError) as e:
        raise ValueError(f"Data inválida: {v}. Formato esperado: YYYY-MM-DD") from e


class PriorityWeights(BaseModel):
    """Pesos dos fatores do score de prioridade"""

    business_value: float = Field(default=30, ge=0)
    user_impact: float = Field(default=25, ge=0)
    complexity: float = Field(default=20, ge=0)
    risk: float = Field(default=15, ge=0)
    dependencies: float = Field(default=10, ge=0)

    @model_validator(mode="after")
    def validate_total(self) -> "PriorityWeights":
        """Garante que ao menos um peso seja positivo"""
        if self.total <= 0:
            raise ValueError("A soma dos pesos de prioridade deve ser maior que zero")
        return self

    @property
    def total(self) -> float:
        return (
            self.business_value
            + self.user_impact
            + self.complexity
            + self.risk
            + self.dependencies
        )

    def normalized(self) -> Dict[str, float]:
        """
        Normaliza os pesos para que somem 100

        Returns:
            Dict[str, float]: Pesos normalizados por fator
        """
        total = self.total
        return {
            name: value / total * 100
            for name, value in self.model_dump().items()
        }


class RiskThresholds(BaseModel):
    """Limiares de classificação do risco geral"""

    low: float = 2.0
    medium: float = 3.5
    high: float = 5.0

    @model_validator(mode="after")
    def validate_order(self) -> "RiskThresholds":
        """Os limiares precisam ser crescentes"""
        if not (self.low <= self.medium <= self.high):
            raise ValueError(
                f"Limiares de risco fora de ordem: low={self.low}, medium={self.medium}, high={self.high}"
            )
        return self


class CapacityConfig(BaseModel):
    """Configuração de capacidade e pontuação das iterações"""

    iteration_length_days: int = Field(default=14, gt=0)
    velocity_buffer_factor: float = Field(default=0.8, gt=0, le=1)
    priority_weights: PriorityWeights = Field(default_factory=PriorityWeights)
    risk_thresholds: RiskThresholds = Field(default_factory=RiskThresholds)


class TeamMember(BaseModel):
    """Modelo para membro do time"""

    id: str
    name: Optional[str] = None
    role: Optional[str] = None
    weekly_available_hours: float = Field(default=40, ge=0)

    @field_validator("weekly_available_hours", mode="before")
    @classmethod
    def default_hours(cls, v):
        """Horas ausentes ou nulas assumem a semana padrão de 40h"""
        return 40 if v is None else v


class ProjectContext(BaseModel):
    """Contexto do projeto usado no cálculo das datas e na geração dos objetivos"""

    start_date: date
    name: str = "Projeto"
    description: Optional[str] = None

    @field_validator("start_date", mode="before")
    @classmethod
    def validate_date(cls, v) -> date:
        """Valida e converte a string de data para date"""
        return _parse_date(v)


class GoalTextConfig(BaseModel):
    """Configuração do gerador externo de objetivos das sprints"""

    enabled: bool = False
    model: str = "gpt-4o-mini"
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    timeout_seconds: float = Field(default=30.0, gt=0)
    temperature: float = Field(default=0.2, ge=0, le=2)


class SetupConfig(BaseModel):
    """Configuração principal do sistema"""

    backlog_file: str
    team_file: str
    output_dir: str = "output"
    capacity: CapacityConfig = Field(default_factory=CapacityConfig)
    project: ProjectContext
    goal_text: GoalTextConfig = Field(default_factory=GoalTextConfig)
