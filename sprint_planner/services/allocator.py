from collections import deque
from datetime import date
from typing import Deque, Dict, List, Optional, Set, Tuple
from loguru import logger
from pydantic import BaseModel, Field
from ..models.config import CapacityConfig
from ..models.entities import Backlog, CapacityProfile, Iteration, WorkItem
from ..models.diagnostics import Diagnostic, DiagnosticKind
from .capacity import add_business_days

# Limite de segurança de iterações por execução
MAX_ITERATIONS = 20

SIMPLE_STRATEGY = "simple"
DEPENDENCY_AWARE_STRATEGY = "dependency-aware"


class AllocationPlan(BaseModel):
    """Partição do backlog produzida pelo alocador"""

    strategy: str
    iterations: List[Iteration]
    unscheduled_item_ids: List[str] = Field(default_factory=list)
    diagnostics: List[Diagnostic] = Field(default_factory=list)


def _order_key(item: WorkItem) -> Tuple[int, float]:
    """Prioridade informada decrescente, depois score decrescente"""
    return (-item.priority.rank, -(item.priority_score or 0))


class SprintAllocator:
    """Serviço responsável pela distribuição dos itens nas iterações"""

    def __init__(
        self,
        config: CapacityConfig,
        capacity: CapacityProfile,
        project_start: date,
    ):
        """
        Inicializa o alocador

        Args:
            config: Configuração de capacidade (duração das iterações)
            capacity: Capacidade do time por iteração
            project_start: Data de início do projeto
        """
        self.config = config
        self.capacity = capacity.total_story_points
        self.project_start = project_start

    def allocate(self, backlog: Backlog) -> AllocationPlan:
        """
        Distribui o backlog em iterações

        Usa a estratégia com dependências quando algum item tem o pai no backlog;
        caso contrário, a estratégia simples.

        Args:
            backlog: Itens já pontuados, na ordem do backlog

        Returns:
            AllocationPlan: Iterações, itens não agendados e diagnósticos
        """
        if backlog.has_hierarchy():
            logger.info("Itens com pai no backlog encontrados, usando alocação com dependências")
            strategy = DEPENDENCY_AWARE_STRATEGY
            buckets, forced, unscheduled = self._allocate_dependency_aware(backlog)
        else:
            logger.info("Nenhuma relação pai/filho encontrada, usando alocação simples")
            strategy = SIMPLE_STRATEGY
            buckets, forced, unscheduled = self._allocate_simple(backlog)

        iterations = []
        diagnostics = []
        for index, items in enumerate(buckets):
            start, end = self.iteration_dates(index)
            iteration = Iteration(
                sequence=index + 1,
                start_date=start,
                end_date=end,
                items=items,
                forced=index in forced,
            )
            iterations.append(iteration)
            if iteration.forced and iteration.total_points > self.capacity:
                item = items[0]
                logger.warning(
                    f"Item {item.id} ({item.points} pontos) excede a capacity de {self.capacity} pontos e foi agendado sozinho na {iteration.name}"
                )
                diagnostics.append(
                    Diagnostic(
                        kind=DiagnosticKind.CAPACITY_EXCEEDED,
                        message=f"Item {item.id} ({item.points} pontos) excede a capacity de {self.capacity} pontos",
                        item_ids=[item.id],
                        iteration=iteration.sequence,
                    )
                )

        if unscheduled:
            logger.warning(
                f"Limite de {MAX_ITERATIONS} iterações atingido, {len(unscheduled)} itens não agendados: {unscheduled}"
            )
            diagnostics.append(
                Diagnostic(
                    kind=DiagnosticKind.ITERATION_CAP,
                    message=f"Limite de {MAX_ITERATIONS} iterações atingido; {len(unscheduled)} itens não agendados",
                    item_ids=unscheduled,
                )
            )

        logger.info(f"Alocação concluída: {len(iterations)} iterações ({strategy})")
        return AllocationPlan(
            strategy=strategy,
            iterations=iterations,
            unscheduled_item_ids=unscheduled,
            diagnostics=diagnostics,
        )

    def iteration_dates(self, index: int) -> Tuple[date, date]:
        """
        Calcula as datas de uma iteração em dias úteis

        Args:
            index: Posição da iteração (começando em zero)

        Returns:
            Tuple[date, date]: Início e fim da iteração
        """
        length = self.config.iteration_length_days
        start = add_business_days(self.project_start, index * length)
        end = add_business_days(start, length - 1)
        return start, end

    def _allocate_simple(
        self, backlog: Backlog
    ) -> Tuple[List[List[WorkItem]], Set[int], List[str]]:
        """Preenchimento guloso por prioridade, uma varredura por iteração"""
        ordered = sorted(backlog.items, key=_order_key)
        unassigned: Dict[str, WorkItem] = {item.id: item for item in ordered}
        buckets: List[List[WorkItem]] = []
        forced: Set[int] = set()

        while unassigned:
            if len(buckets) >= MAX_ITERATIONS:
                break

            remaining = self.capacity
            bucket: List[WorkItem] = []
            for item in ordered:
                if item.id not in unassigned:
                    continue
                if item.points <= remaining:
                    bucket.append(item)
                    del unassigned[item.id]
                    remaining -= item.points

            if not bucket:
                item = self._smallest(unassigned.values())
                logger.info(f"Nenhum item coube na iteração {len(buckets) + 1}, forçando o menor item {item.id}")
                bucket.append(item)
                del unassigned[item.id]
                forced.add(len(buckets))

            logger.info(
                f"Iteração {len(buckets) + 1}: {[i.id for i in bucket]} ({sum(i.points for i in bucket)} pontos)"
            )
            buckets.append(bucket)

        return buckets, forced, list(unassigned)

    def _allocate_dependency_aware(
        self, backlog: Backlog
    ) -> Tuple[List[List[WorkItem]], Set[int], List[str]]:
        """
        Alocação que mantém cada pai junto dos seus filhos

        Filhos que não couberam junto do pai entram numa fila e são drenados
        antes de qualquer novo grupo. Um item só é agendado depois do seu pai.
        """
        ordered = sorted(backlog.items, key=_order_key)
        roots = [item for item in ordered if not backlog.has_parent_in_batch(item)]
        unassigned: Dict[str, WorkItem] = {item.id: item for item in ordered}
        scheduled: Set[str] = set()
        leftovers: Deque[str] = deque()
        buckets: List[List[WorkItem]] = []
        forced: Set[int] = set()
        root_index = 0

        def parent_ready(item: WorkItem) -> bool:
            return not backlog.has_parent_in_batch(item) or item.parent_id in scheduled

        def assign(item: WorkItem, bucket: List[WorkItem]) -> None:
            bucket.append(item)
            del unassigned[item.id]
            scheduled.add(item.id)

        def next_root() -> Optional[WorkItem]:
            nonlocal root_index
            while root_index < len(roots) and roots[root_index].id not in unassigned:
                root_index += 1
            return roots[root_index] if root_index < len(roots) else None

        while unassigned:
            if len(buckets) >= MAX_ITERATIONS:
                break

            remaining = self.capacity
            bucket: List[WorkItem] = []

            # 1. Filhos pendentes de um pai já agendado
            if leftovers:
                still_waiting: Deque[str] = deque()
                for item_id in leftovers:
                    item = unassigned.get(item_id)
                    if item is None:
                        continue
                    if item.points <= remaining and parent_ready(item):
                        assign(item, bucket)
                        remaining -= item.points
                    else:
                        still_waiting.append(item_id)
                leftovers = still_waiting

            # 2. Próximos grupos pai + filhos, somente com a fila vazia
            while not leftovers:
                parent = next_root()
                if parent is None:
                    break
                descendants = [
                    d for d in self._descendants(backlog, parent) if d.id in unassigned
                ]
                group_points = parent.points + sum(d.points for d in descendants)

                if group_points <= remaining:
                    assign(parent, bucket)
                    for child in descendants:
                        assign(child, bucket)
                    remaining -= group_points
                    logger.info(f"Grupo do item {parent.id} agendado completo ({group_points} pontos)")
                    continue

                if parent.points > remaining:
                    # O pai espera a próxima iteração
                    break

                assign(parent, bucket)
                remaining -= parent.points
                for child in descendants:
                    if child.points <= remaining and parent_ready(child):
                        assign(child, bucket)
                        remaining -= child.points
                    else:
                        leftovers.append(child.id)
                logger.info(
                    f"Grupo do item {parent.id} dividido, filhos pendentes para a próxima iteração: {list(leftovers)}"
                )
                break

            # 3. Nada coube: força o menor item elegível
            if not bucket:
                candidates = [
                    unassigned[item_id]
                    for item_id in leftovers
                    if item_id in unassigned and parent_ready(unassigned[item_id])
                ]
                if not candidates and next_root() is not None:
                    candidates = [next_root()]
                if not candidates:
                    candidates = list(unassigned.values())

                item = self._smallest(candidates)
                logger.info(f"Nenhum item coube na iteração {len(buckets) + 1}, forçando o menor item {item.id}")
                assign(item, bucket)
                forced.add(len(buckets))
                if item.id in leftovers:
                    leftovers.remove(item.id)
                for child in self._descendants(backlog, item):
                    if child.id in unassigned and child.id not in leftovers:
                        leftovers.append(child.id)

            logger.info(
                f"Iteração {len(buckets) + 1}: {[i.id for i in bucket]} ({sum(i.points for i in bucket)} pontos)"
            )
            buckets.append(bucket)

        return buckets, forced, list(unassigned)

    @staticmethod
    def _descendants(backlog: Backlog, parent: WorkItem) -> List[WorkItem]:
        """
        Lista os descendentes de um item em pré-ordem

        Cada nível é ordenado por prioridade, então todo pai aparece antes dos seus filhos.
        Os filhos de cada nível entram invertidos na pilha para saírem na ordem certa.
        """
        result: List[WorkItem] = []
        visited = {parent.id}
        pending = list(reversed(sorted(backlog.children_of(parent.id), key=_order_key)))

        while pending:
            child = pending.pop()
            if child.id in visited:
                continue
            visited.add(child.id)
            result.append(child)
            pending.extend(reversed(sorted(backlog.children_of(child.id), key=_order_key)))

        return result

    @staticmethod
    def _smallest(items) -> WorkItem:
        """Menor item em pontos; empates ficam com o primeiro na ordem recebida"""
        return min(items, key=lambda i: i.points)
