from typing import Dict, List, Optional
from loguru import logger
from ..models.config import ProjectContext
from ..models.entities import (
    ActionPriority,
    CapacityProfile,
    Iteration,
    IterationDocumentation,
    IterationMetrics,
    PriorityDistribution,
    PriorityTier,
    Recommendation,
    RiskLevel,
)
from .goals import GoalTextService, normalize_intent


class Reporter:
    """Serviço responsável por métricas, recomendações e textos de cada iteração"""

    def __init__(
        self,
        capacity: CapacityProfile,
        goal_service: GoalTextService,
        iteration_length_days: int = 14,
    ):
        """
        Inicializa o gerador de métricas e recomendações

        Args:
            capacity: Capacidade do time por iteração
            goal_service: Serviço de objetivos (gerador externo + fallback)
            iteration_length_days: Duração das iterações em dias
        """
        self.capacity = capacity
        self.goal_service = goal_service
        self.iteration_length_days = iteration_length_days

    def metrics(
        self,
        iteration: Iteration,
        families: Optional[List[List[str]]] = None,
        placement: Optional[Dict[str, int]] = None,
    ) -> IterationMetrics:
        """
        Calcula as métricas de uma iteração

        Args:
            iteration: Iteração alocada
            families: Famílias de itens do grafo de dependências
            placement: Mapa item -> número da iteração em que foi agendado

        Returns:
            IterationMetrics: Métricas da iteração
        """
        items = iteration.items
        total_points = sum(i.points for i in items)
        total_hours = sum(i.hours for i in items)
        points_utilization = (
            total_points / self.capacity.total_story_points * 100
            if self.capacity.total_story_points > 0
            else 0.0
        )
        hours_utilization = (
            total_hours / self.capacity.total_hours * 100
            if self.capacity.total_hours > 0
            else 0.0
        )

        distribution = PriorityDistribution(
            critical=sum(1 for i in items if i.priority == PriorityTier.CRITICAL),
            high=sum(1 for i in items if i.priority == PriorityTier.HIGH),
            medium=sum(1 for i in items if i.priority == PriorityTier.MEDIUM),
            low=sum(1 for i in items if i.priority == PriorityTier.LOW),
        )

        count = len(items)
        avg_business_value = sum(i.business_value for i in items) / count if count else 0.0
        avg_complexity = sum(i.complexity for i in items) / count if count else 0.0

        return IterationMetrics(
            item_count=count,
            total_points=total_points,
            total_hours=total_hours,
            points_utilization=points_utilization,
            hours_utilization=hours_utilization,
            priority_distribution=distribution,
            avg_business_value=round(avg_business_value, 1),
            avg_complexity=round(avg_complexity, 1),
            is_over_capacity=points_utilization > 100,
            split_families=self._split_families(iteration, families or [], placement or {}),
        )

    @staticmethod
    def _split_families(
        iteration: Iteration, families: List[List[str]], placement: Dict[str, int]
    ) -> int:
        """Conta as famílias presentes na iteração que têm membros em outras iterações"""
        present = set(iteration.item_ids)
        split = 0
        for family in families:
            if len(family) < 2 or not present.intersection(family):
                continue
            if any(placement.get(member) != iteration.sequence for member in family):
                split += 1
        return split

    def recommendations(
        self, iteration: Iteration, placement: Dict[str, int]
    ) -> List[Recommendation]:
        """
        Gera as recomendações de uma iteração

        Args:
            iteration: Iteração com métricas e risco já calculados
            placement: Mapa item -> número da iteração em que foi agendado

        Returns:
            List[Recommendation]: Recomendações na ordem das regras
        """
        recommendations: List[Recommendation] = []
        metrics = iteration.metrics
        items = iteration.items

        if metrics and metrics.points_utilization > 90:
            recommendations.append(Recommendation(
                type="capacity",
                priority=ActionPriority.HIGH,
                message=(
                    f"A {iteration.name} está com {round(metrics.points_utilization)}% da capacity. "
                    "Considere reduzir o escopo ou reservar folga."
                ),
                action="Revise as prioridades e mova itens de menor prioridade para a próxima iteração",
            ))

        assessment = iteration.risk_assessment
        if assessment and assessment.risk_level == RiskLevel.HIGH:
            risky = [f'"{i.title}"' for i in items if i.risk >= 4]
            recommendations.append(Recommendation(
                type="risk",
                priority=ActionPriority.CRITICAL,
                message=(
                    f"Risco alto detectado nos itens: {', '.join(risky)}. Atenção imediata necessária."
                    if risky
                    else "Risco alto detectado. Atenção imediata necessária."
                ),
                action="Revise e aplique as mitigações sugeridas",
            ))

        unresolved = {}
        for item in items:
            pending = [
                dep_id
                for dep_id in item.dependencies
                if placement.get(dep_id) is None or placement[dep_id] > iteration.sequence
            ]
            if pending:
                unresolved[item.id] = pending
        if unresolved:
            details = "; ".join(f"{item_id} -> {', '.join(deps)}" for item_id, deps in unresolved.items())
            recommendations.append(Recommendation(
                type="dependencies",
                priority=ActionPriority.MEDIUM,
                message=(
                    f"{len(unresolved)} itens dependem de entregas ainda não resolvidas até esta iteração ({details})."
                ),
                action="Garanta que as dependências estejam resolvidas antes do início da iteração",
            ))

        if metrics and metrics.item_count:
            dist = metrics.priority_distribution
            high_priority = dist.critical + dist.high
            if high_priority / metrics.item_count > 0.8:
                recommendations.append(Recommendation(
                    type="balance",
                    priority=ActionPriority.MEDIUM,
                    message=(
                        f"Iteração concentrada em itens de alta prioridade ({high_priority} de {metrics.item_count}). "
                        "Considere o risco de aumento de escopo."
                    ),
                    action="Garanta folga do time para trabalho urgente inesperado",
                ))

        return recommendations

    def documentation(self, iteration: Iteration) -> IterationDocumentation:
        """
        Monta a documentação resumida de uma iteração

        Args:
            iteration: Iteração com métricas e risco já calculados

        Returns:
            IterationDocumentation: Visão geral, objetivos, riscos, datas e critérios de sucesso
        """
        actions = list(dict.fromkeys(
            normalize_intent(i.want or i.title) for i in iteration.items
        ))[:3]
        weeks = self.iteration_length_days / 7
        metrics = iteration.metrics
        assessment = iteration.risk_assessment

        objectives = [
            f"Entregar as funcionalidades: {', '.join(actions)}",
            f"Concluir {len(iteration.items)} itens somando {iteration.total_points} story points",
        ]
        if metrics:
            objectives.append(f"Atingir {round(metrics.points_utilization)}% de utilização da capacity")
        objectives.append("Manter o padrão de qualidade entregando valor ao usuário")

        return IterationDocumentation(
            overview=f"A {iteration.name} é uma iteração de {weeks:g} semanas focada em: {', '.join(actions)}.",
            objectives=objectives,
            risk_summary=(
                f"Nível de risco: {assessment.risk_level.value.upper()} ({assessment.risk_score}/5)"
                if assessment
                else "Avaliação de risco indisponível"
            ),
            key_dates={
                "start_date": iteration.start_date.isoformat(),
                "end_date": iteration.end_date.isoformat(),
                "duration": f"{weeks:g} semanas",
            },
            success_criteria=[
                *[f"Funcionalidade: {action} atende aos critérios de aceite e passa no QA." for action in actions],
                "Nenhum bug crítico nas funcionalidades entregues",
                "Velocidade do time mantida ou melhorada",
            ],
        )

    async def goals(self, iterations: List[Iteration], context: ProjectContext) -> None:
        """Preenche o objetivo de cada iteração"""
        results = await self.goal_service.goals_for(iterations, context)
        for iteration, (text, source) in zip(iterations, results):
            iteration.goal_text = text
            iteration.goal_source = source
        logger.info(f"Objetivos definidos para {len(iterations)} iterações")
