from datetime import date, datetime
from typing import Dict, Iterator, List, Optional
from enum import Enum
from pydantic import BaseModel, Field, field_validator

from .diagnostics import Diagnostic

class PriorityTier(str, Enum):
    """Prioridade informada para o item"""
    CRITICAL = "Critical"
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"

    @property
    def rank(self) -> int:
        """Peso usado na ordenação (maior primeiro)"""
        return {"Critical": 4, "High": 3, "Medium": 2, "Low": 1}[self.value]

class PriorityLevel(str, Enum):
    """Nível de prioridade calculado a partir do score"""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    BACKLOG = "backlog"

class RiskLevel(str, Enum):
    """Classificação do risco geral de uma iteração"""
    VERY_LOW = "Very-low"
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"

class ActionPriority(str, Enum):
    """Prioridade de mitigações e recomendações"""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return {"critical": 4, "high": 3, "medium": 2, "low": 1}[self.value]

class GoalSource(str, Enum):
    """Origem do texto de objetivo da iteração"""
    GENERATED = "generated"
    FALLBACK = "fallback"

class WorkItem(BaseModel):
    """Modelo de um item de trabalho do backlog"""
    id: str
    title: str
    points: int = Field(default=1, ge=0)
    business_value: int = Field(default=3, ge=1, le=5)
    user_impact: int = Field(default=3, ge=1, le=5)
    complexity: int = Field(default=3, ge=1, le=5)
    risk: int = Field(default=3, ge=1, le=5)
    dependencies: List[str] = Field(default_factory=list)
    parent_id: Optional[str] = None
    child_ids: List[str] = Field(default_factory=list)
    priority: PriorityTier = PriorityTier.MEDIUM
    priority_score: Optional[float] = None
    dependency_score: Optional[float] = None
    priority_level: Optional[PriorityLevel] = None
    role: Optional[str] = None
    want: Optional[str] = None
    benefit: Optional[str] = None
    description: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    acceptance_criteria: List[str] = Field(default_factory=list)
    estimated_hours: Optional[float] = Field(default=None, ge=0)

    @field_validator("dependencies")
    @classmethod
    def unique_dependencies(cls, v: List[str]) -> List[str]:
        """Remove dependências repetidas mantendo a ordem original"""
        return list(dict.fromkeys(v))

    @property
    def hours(self) -> float:
        return self.estimated_hours or 0.0

class Backlog:
    """
    Conjunto de itens de uma execução, endereçado por id.

    Os filhos de cada item são sempre derivados do parent_id dos demais itens,
    numa única passada; o child_ids recebido na entrada é descartado.
    """

    def __init__(self, items: List[WorkItem]):
        children: Dict[str, List[str]] = {}
        for item in items:
            if item.parent_id:
                children.setdefault(item.parent_id, []).append(item.id)

        self._items: Dict[str, WorkItem] = {
            item.id: item.model_copy(update={"child_ids": children.get(item.id, [])})
            for item in items
        }

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[WorkItem]:
        return iter(self._items.values())

    def __contains__(self, item_id: str) -> bool:
        return item_id in self._items

    @property
    def items(self) -> List[WorkItem]:
        return list(self._items.values())

    @property
    def ids(self) -> List[str]:
        return list(self._items)

    @property
    def total_points(self) -> int:
        return sum(item.points for item in self._items.values())

    def get(self, item_id: str) -> Optional[WorkItem]:
        return self._items.get(item_id)

    def children_of(self, item_id: str) -> List[WorkItem]:
        """Retorna os filhos diretos de um item"""
        item = self._items.get(item_id)
        if not item:
            return []
        return [self._items[child_id] for child_id in item.child_ids]

    def has_parent_in_batch(self, item: WorkItem) -> bool:
        """Verifica se o pai do item faz parte deste backlog"""
        return item.parent_id is not None and item.parent_id in self._items

    def has_hierarchy(self) -> bool:
        """Verifica se algum item tem o pai presente no backlog"""
        return any(self.has_parent_in_batch(item) for item in self._items.values())

class MemberCapacity(BaseModel):
    """Capacidade de um membro em uma iteração"""
    member_id: str
    weekly_hours: float
    points: int

class CapacityProfile(BaseModel):
    """Capacidade do time por iteração"""
    total_story_points: int
    total_hours: float
    velocity_buffer_factor: float = 0.8
    members: List[MemberCapacity] = Field(default_factory=list)

class PriorityDistribution(BaseModel):
    """Quantidade de itens por prioridade informada"""
    critical: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0

class IterationMetrics(BaseModel):
    """Métricas de uma iteração"""
    item_count: int
    total_points: int
    total_hours: float
    points_utilization: float
    hours_utilization: float
    priority_distribution: PriorityDistribution
    avg_business_value: float
    avg_complexity: float
    is_over_capacity: bool
    split_families: int = 0

class RiskFactors(BaseModel):
    """Contribuições independentes do risco"""
    technical_complexity: float = 0.0
    dependency_risk: float = 0.0
    capacity_risk: float = 0.0
    uncertainty_risk: float = 0.0
    velocity_risk: float = 0.0

    def values(self) -> List[float]:
        return list(self.model_dump().values())

class RiskAssessment(BaseModel):
    """Avaliação de risco de uma iteração"""
    overall_risk: float
    risk_level: RiskLevel
    risk_factors: RiskFactors
    risk_score: float
    confidence: float

class Mitigation(BaseModel):
    """Ação de mitigação ligada a um fator de risco"""
    type: str
    priority: ActionPriority
    description: str
    action: str
    effort: str
    item_ids: List[str] = Field(default_factory=list)

class Recommendation(BaseModel):
    """Recomendação emitida para uma iteração"""
    type: str
    priority: ActionPriority
    message: str
    action: str

class IterationDocumentation(BaseModel):
    """Documentação resumida de uma iteração"""
    overview: str
    objectives: List[str]
    risk_summary: str
    key_dates: Dict[str, str]
    success_criteria: List[str]

class Iteration(BaseModel):
    """Representa uma iteração (sprint) do plano"""
    sequence: int
    start_date: date
    end_date: date
    items: List[WorkItem] = Field(default_factory=list)
    forced: bool = False
    metrics: Optional[IterationMetrics] = None
    risk_assessment: Optional[RiskAssessment] = None
    mitigations: List[Mitigation] = Field(default_factory=list)
    recommendations: List[Recommendation] = Field(default_factory=list)
    documentation: Optional[IterationDocumentation] = None
    goal_text: str = ""
    goal_source: GoalSource = GoalSource.FALLBACK

    @property
    def name(self) -> str:
        return f"Sprint {self.sequence}"

    @property
    def item_ids(self) -> List[str]:
        return [item.id for item in self.items]

    @property
    def total_points(self) -> int:
        return sum(item.points for item in self.items)

    def to_dict(self) -> dict:
        """Serializa a iteração para um dicionário compatível com JSON"""
        return self.model_dump(mode="json")

class AllocationResult(BaseModel):
    """Resultado completo de uma execução do alocador"""
    iterations: List[Iteration]
    diagnostics: List[Diagnostic] = Field(default_factory=list)
    unscheduled_item_ids: List[str] = Field(default_factory=list)
    strategy: str
    capacity: CapacityProfile
    families: List[List[str]] = Field(default_factory=list)
    generated_at: datetime

    @property
    def total_points(self) -> int:
        return sum(iteration.total_points for iteration in self.iterations)

    def to_dict(self) -> dict:
        """Serializa o resultado para um dicionário compatível com JSON"""
        return self.model_dump(mode="json")
