import math
from typing import Dict, List
from loguru import logger
from ..models.config import PriorityWeights
from ..models.entities import WorkItem, PriorityLevel


class PriorityScorer:
    """Serviço responsável pelo score de prioridade dos itens"""

    # Limiares mínimos de cada nível, do maior para o menor
    LEVEL_THRESHOLDS = [
        (4.5, PriorityLevel.CRITICAL),
        (3.5, PriorityLevel.HIGH),
        (2.5, PriorityLevel.MEDIUM),
        (1.5, PriorityLevel.LOW),
    ]

    def __init__(self, weights: PriorityWeights):
        """
        Inicializa o calculador de prioridade

        Args:
            weights: Pesos dos fatores de prioridade (normalizados para somar 100)
        """
        self.weights = weights
        self.normalized_weights: Dict[str, float] = weights.normalized()

    @staticmethod
    def dependency_score(item: WorkItem) -> float:
        """
        Calcula o score de dependência: itens com menos dependências pontuam mais

        Args:
            item: Item a ser avaliado

        Returns:
            float: Score entre 1 e 5
        """
        score = 3.0 - 0.5 * len(item.dependencies)
        return max(1.0, min(5.0, score))

    def priority_score(self, item: WorkItem) -> float:
        """
        Calcula o score ponderado de prioridade

        Complexidade e risco são invertidos (6 - valor), de modo que valores altos
        reduzem a prioridade.

        Args:
            item: Item a ser avaliado

        Returns:
            float: Score arredondado em uma casa decimal
        """
        w = self.normalized_weights
        score = (
            item.business_value * w["business_value"] / 100
            + item.user_impact * w["user_impact"] / 100
            + (6 - item.complexity) * w["complexity"] / 100
            + (6 - item.risk) * w["risk"] / 100
            + self.dependency_score(item) * w["dependencies"] / 100
        )
        # Arredondamento "half up", estável entre execuções
        return math.floor(score * 10 + 0.5) / 10

    def priority_level(self, score: float) -> PriorityLevel:
        """Converte um score no nível de prioridade correspondente"""
        for threshold, level in self.LEVEL_THRESHOLDS:
            if score >= threshold:
                return level
        return PriorityLevel.BACKLOG

    def score(self, item: WorkItem) -> WorkItem:
        """Retorna uma cópia do item com os scores calculados"""
        priority_score = self.priority_score(item)
        return item.model_copy(
            update={
                "priority_score": priority_score,
                "dependency_score": self.dependency_score(item),
                "priority_level": self.priority_level(priority_score),
            }
        )

    def score_all(self, items: List[WorkItem]) -> List[WorkItem]:
        """
        Calcula os scores de todos os itens e ordena o backlog

        A ordem é score de prioridade decrescente, com o score de dependência
        crescente como desempate; itens empatados mantêm a ordem de entrada.

        Args:
            items: Itens do backlog

        Returns:
            List[WorkItem]: Cópias pontuadas e ordenadas
        """
        scored = [self.score(item) for item in items]
        scored.sort(key=lambda i: (-i.priority_score, i.dependency_score))
        logger.info(f"Scores de prioridade calculados para {len(scored)} itens")
        return scored
