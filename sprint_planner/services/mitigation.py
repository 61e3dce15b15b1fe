from typing import List
from ..models.entities import ActionPriority, Iteration, Mitigation, RiskAssessment


def _titles(items) -> str:
    return ", ".join(f'"{item.title}"' for item in items)


class MitigationAdvisor:
    """Gera ações de mitigação a partir dos fatores de risco de uma iteração"""

    def advise(self, iteration: Iteration, assessment: RiskAssessment) -> List[Mitigation]:
        """
        Aplica as regras de mitigação

        Args:
            iteration: Iteração avaliada
            assessment: Avaliação de risco da iteração

        Returns:
            List[Mitigation]: Mitigações ordenadas de critical para low
        """
        factors = assessment.risk_factors
        items = iteration.items
        mitigations: List[Mitigation] = []

        if factors.technical_complexity > 2.0:
            complex_items = [i for i in items if i.complexity >= 4]
            mitigations.append(Mitigation(
                type="technical",
                priority=ActionPriority.HIGH,
                description=(
                    f"Considere quebrar os itens complexos ({_titles(complex_items)}) em tarefas menores."
                    if complex_items
                    else "Considere quebrar os itens complexos em tarefas menores."
                ),
                action="story-splitting",
                effort="medium",
                item_ids=[i.id for i in complex_items],
            ))

        if factors.dependency_risk > 1.5:
            # Dependências, filhos e pai fora da iteração
            present = {i.id for i in items}
            external = []
            for item in items:
                related = list(item.dependencies) + list(item.child_ids)
                if item.parent_id:
                    related.append(item.parent_id)
                for related_id in related:
                    if related_id not in present and related_id not in external:
                        external.append(related_id)
            mitigations.append(Mitigation(
                type="dependency",
                priority=ActionPriority.HIGH,
                description=(
                    f"Resolva as dependências externas ({', '.join(external)}) antes do início da iteração."
                    if external
                    else "Identifique e resolva as dependências externas antes do início da iteração."
                ),
                action="dependency-resolution",
                effort="high",
                item_ids=external,
            ))

        if factors.capacity_risk > 3.0:
            utilization = iteration.metrics.points_utilization if iteration.metrics else 0.0
            mitigations.append(Mitigation(
                type="capacity",
                priority=ActionPriority.CRITICAL,
                description=(
                    f"Reduza o escopo da iteração ou aumente a capacity do time. Utilização atual: {round(utilization)}%."
                ),
                action="scope-adjustment",
                effort="low",
            ))

        if factors.uncertainty_risk > 2.0:
            risky_items = [i for i in items if i.risk >= 4]
            mitigations.append(Mitigation(
                type="uncertainty",
                priority=ActionPriority.MEDIUM,
                description=(
                    f"Faça uma sessão de reestimativa para os itens de alto risco: {_titles(risky_items)}."
                    if risky_items
                    else "Faça uma sessão de reestimativa com o time."
                ),
                action="estimation-review",
                effort="low",
                item_ids=[i.id for i in risky_items],
            ))

        if factors.velocity_risk > 1.0:
            mitigations.append(Mitigation(
                type="velocity",
                priority=ActionPriority.MEDIUM,
                description=(
                    f"Acompanhe a velocidade do time e ajuste o planejamento das próximas iterações ({iteration.name})."
                ),
                action="velocity-tracking",
                effort="low",
            ))

        return sorted(mitigations, key=lambda m: -m.priority.rank)
