from typing import List
from loguru import logger
from ..models.config import RiskThresholds
from ..models.entities import (
    Iteration,
    RiskAssessment,
    RiskFactors,
    RiskLevel,
    WorkItem,
)

MAX_RISK = 5.0


class RiskAssessor:
    """Serviço responsável pela avaliação de risco das iterações"""

    def __init__(self, thresholds: RiskThresholds):
        """
        Inicializa o avaliador de risco

        Args:
            thresholds: Limiares de classificação do risco geral
        """
        self.thresholds = thresholds

    def assess(self, iteration: Iteration) -> RiskAssessment:
        """
        Calcula o risco de uma iteração

        Os cinco fatores são independentes e somados; o risco geral é limitado a 5.

        Args:
            iteration: Iteração com as métricas já calculadas

        Returns:
            RiskAssessment: Fatores, nível, score e confiança
        """
        items = iteration.items
        utilization = iteration.metrics.points_utilization if iteration.metrics else 0.0

        factors = RiskFactors(
            technical_complexity=self.technical_complexity(items),
            dependency_risk=self.dependency_risk(items),
            capacity_risk=self.capacity_risk(utilization),
            uncertainty_risk=self.uncertainty_risk(items),
            velocity_risk=self.velocity_risk(iteration.sequence),
        )
        total = sum(factors.values())
        level = self.categorize(total)

        logger.info(
            f"Risco da {iteration.name}: {total:.2f} ({level.value}) - {factors.model_dump()}"
        )
        return RiskAssessment(
            overall_risk=max(0.0, min(MAX_RISK, total)),
            risk_level=level,
            risk_factors=factors,
            risk_score=round(total, 1),
            confidence=self.confidence(factors),
        )

    @staticmethod
    def technical_complexity(items: List[WorkItem]) -> float:
        return sum(item.complexity for item in items) * 0.02

    @staticmethod
    def uncertainty_risk(items: List[WorkItem]) -> float:
        return sum(item.risk for item in items) * 0.025

    @staticmethod
    def item_dependency_risk(item: WorkItem, present: set) -> float:
        """
        Risco de dependência de um item em relação aos itens da mesma iteração

        Args:
            item: Item avaliado
            present: Ids dos itens da iteração

        Returns:
            float: 0.5 por relação ausente da iteração
        """
        if item.child_ids:
            missing = [c for c in item.child_ids if c not in present]
            return len(missing) * 0.5
        if item.parent_id:
            return 0.5 if item.parent_id not in present else 0.0
        missing = [d for d in item.dependencies if d not in present]
        return len(missing) * 0.5

    def dependency_risk(self, items: List[WorkItem]) -> float:
        present = {item.id for item in items}
        return sum(self.item_dependency_risk(item, present) * 0.3 for item in items)

    @staticmethod
    def capacity_risk(utilization: float) -> float:
        """Degraus de risco pela utilização de pontos (%)"""
        if utilization > 100:
            return 5.0
        if utilization > 90:
            return 3.5
        if utilization > 80:
            return 2.0
        if utilization > 70:
            return 1.0
        return 0.5

    @staticmethod
    def velocity_risk(sequence: int) -> float:
        """Incerteza de velocidade cresce com o avanço das iterações; zero na primeira"""
        if sequence <= 1:
            return 0.0
        return min(2.0, sequence * 0.1)

    def categorize(self, total: float) -> RiskLevel:
        if total >= self.thresholds.high:
            return RiskLevel.HIGH
        if total >= self.thresholds.medium:
            return RiskLevel.MEDIUM
        if total >= self.thresholds.low:
            return RiskLevel.LOW
        return RiskLevel.VERY_LOW

    @staticmethod
    def confidence(factors: RiskFactors) -> float:
        """
        Heurística de exibição: fatores mais equilibrados dão confiança maior

        Returns:
            float: max(0.1, 1 - variância/10), com duas casas decimais
        """
        values = factors.values()
        mean = sum(values) / len(values)
        variance = sum((v - mean) ** 2 for v in values) / len(values)
        return round(max(0.1, 1 - variance / 10), 2)
