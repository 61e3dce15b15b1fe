import asyncio
from datetime import datetime
from typing import Dict, List, Optional, Tuple
from loguru import logger
from ..models.config import CapacityConfig, ProjectContext, TeamMember
from ..models.entities import AllocationResult, Backlog, Iteration, WorkItem
from ..models.diagnostics import Diagnostic, ValidationError
from .allocator import SprintAllocator
from .capacity import CapacityCalculator
from .dependencies import DependencyGraphBuilder
from .goals import DEFAULT_TIMEOUT_SECONDS, GoalTextGenerator, GoalTextService
from .mitigation import MitigationAdvisor
from .priority import PriorityScorer
from .reporter import Reporter
from .risk import RiskAssessor


class SprintPlanner:
    """Orquestra o cálculo completo do plano de iterações"""

    def __init__(
        self,
        capacity_config: CapacityConfig,
        goal_generator: Optional[GoalTextGenerator] = None,
        goal_timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        """
        Inicializa o planejador

        Args:
            capacity_config: Duração das iterações, buffer, pesos e limiares de risco
            goal_generator: Gerador externo dos objetivos (opcional)
            goal_timeout: Tempo máximo de cada chamada ao gerador em segundos
        """
        self.config = capacity_config
        self.scorer = PriorityScorer(capacity_config.priority_weights)
        self.graph_builder = DependencyGraphBuilder()
        self.capacity_calculator = CapacityCalculator(capacity_config)
        self.risk_assessor = RiskAssessor(capacity_config.risk_thresholds)
        self.mitigation_advisor = MitigationAdvisor()
        self.goal_service = GoalTextService(goal_generator, timeout=goal_timeout)

    def validate(
        self,
        items: List[WorkItem],
        team_members: List[TeamMember],
        project_context: Optional[ProjectContext],
    ) -> None:
        """
        Valida as entradas antes de qualquer cálculo

        Raises:
            ValidationError: Backlog ou time vazios, ids duplicados ou contexto ausente
        """
        if not items:
            raise ValidationError("Nenhum item de backlog informado")
        if not team_members:
            raise ValidationError("Nenhum membro de time informado")
        if project_context is None:
            raise ValidationError("Contexto do projeto não informado")

        seen = set()
        duplicates = []
        for item in items:
            if item.id in seen and item.id not in duplicates:
                duplicates.append(item.id)
            seen.add(item.id)
        if duplicates:
            raise ValidationError(f"Ids de itens duplicados: {', '.join(duplicates)}")

    async def allocate_async(
        self,
        items: List[WorkItem],
        team_members: List[TeamMember],
        project_context: Optional[ProjectContext],
        now: Optional[datetime] = None,
    ) -> AllocationResult:
        """
        Calcula o plano de iterações

        Args:
            items: Itens do backlog
            team_members: Membros do time
            project_context: Data de início e descrição do projeto
            now: Instante de referência do resultado (fixo para execuções reprodutíveis)

        Returns:
            AllocationResult: Iterações, diagnósticos e dados de apoio

        Raises:
            ValidationError: Entrada inválida
        """
        self.validate(items, team_members, project_context)

        capacity = self.capacity_calculator.calculate(team_members)
        if capacity.total_story_points <= 0:
            raise ValidationError(
                "Capacity do time é zero story points por iteração; verifique as horas disponíveis"
            )

        backlog = Backlog(self.scorer.score_all(items))
        logger.info(f"Backlog com {len(backlog)} itens e {backlog.total_points} pontos")

        graph = self.graph_builder.build(backlog)
        diagnostics: List[Diagnostic] = graph.diagnostics()

        allocator = SprintAllocator(self.config, capacity, project_context.start_date)
        plan = allocator.allocate(backlog)
        diagnostics.extend(plan.diagnostics)
        iterations = plan.iterations

        placement: Dict[str, int] = {
            item.id: iteration.sequence
            for iteration in iterations
            for item in iteration.items
        }

        reporter = Reporter(capacity, self.goal_service, self.config.iteration_length_days)
        for iteration in iterations:
            iteration.metrics = reporter.metrics(iteration, graph.families, placement)
            assessment = self.risk_assessor.assess(iteration)
            iteration.risk_assessment = assessment
            iteration.mitigations = self.mitigation_advisor.advise(iteration, assessment)
            iteration.recommendations = reporter.recommendations(iteration, placement)
            iteration.documentation = reporter.documentation(iteration)

        await reporter.goals(iterations, project_context)

        return AllocationResult(
            iterations=iterations,
            diagnostics=diagnostics,
            unscheduled_item_ids=plan.unscheduled_item_ids,
            strategy=plan.strategy,
            capacity=capacity,
            families=graph.families,
            generated_at=now or datetime.now(),
        )

    def allocate(
        self,
        items: List[WorkItem],
        team_members: List[TeamMember],
        project_context: Optional[ProjectContext],
        now: Optional[datetime] = None,
    ) -> AllocationResult:
        """Versão síncrona de allocate_async"""
        return asyncio.run(self.allocate_async(items, team_members, project_context, now))


def allocate(
    items: List[WorkItem],
    team_members: List[TeamMember],
    capacity_config: CapacityConfig,
    project_context: Optional[ProjectContext],
    goal_generator: Optional[GoalTextGenerator] = None,
    now: Optional[datetime] = None,
) -> Tuple[List[Iteration], List[Diagnostic]]:
    """
    Ponto de entrada da alocação

    Args:
        items: Itens do backlog
        team_members: Membros do time
        capacity_config: Configuração de capacidade
        project_context: Contexto do projeto
        goal_generator: Gerador externo dos objetivos (opcional)
        now: Instante de referência do resultado

    Returns:
        Tuple[List[Iteration], List[Diagnostic]]: Iterações e diagnósticos
    """
    planner = SprintPlanner(capacity_config, goal_generator)
    result = planner.allocate(items, team_members, project_context, now)
    return result.iterations, result.diagnostics
