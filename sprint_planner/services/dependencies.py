from typing import Dict, Iterator, List, Set, Tuple
from loguru import logger
from pydantic import BaseModel, Field
from ..models.entities import Backlog
from ..models.diagnostics import Diagnostic, DiagnosticKind


class DependencyNode(BaseModel):
    """Nó do grafo de dependências"""

    item_id: str
    dependencies: List[str] = Field(default_factory=list)
    dependents: List[str] = Field(default_factory=list)


class DependencyGraph(BaseModel):
    """Grafo de dependências com ciclos e famílias já calculados"""

    nodes: Dict[str, DependencyNode]
    cycles: List[List[str]] = Field(default_factory=list)
    families: List[List[str]] = Field(default_factory=list)

    def family_index(self) -> Dict[str, int]:
        """Mapeia cada item para o índice da sua família"""
        return {
            item_id: index
            for index, family in enumerate(self.families)
            for item_id in family
        }

    def diagnostics(self) -> List[Diagnostic]:
        """Converte os ciclos encontrados em diagnósticos não fatais"""
        return [
            Diagnostic(
                kind=DiagnosticKind.CYCLE_DETECTED,
                message=f"Dependência circular detectada: {' -> '.join(cycle + [cycle[0]])}",
                item_ids=list(cycle),
            )
            for cycle in self.cycles
        ]


class DependencyGraphBuilder:
    """Serviço responsável pela análise das relações entre itens"""

    def build(self, backlog: Backlog) -> DependencyGraph:
        """
        Monta o grafo de dependências do backlog

        Dependências para ids fora do backlog são descartadas. Ciclos não
        interrompem a execução: são apenas registrados.

        Args:
            backlog: Itens da execução

        Returns:
            DependencyGraph: Nós, ciclos e famílias
        """
        nodes: Dict[str, DependencyNode] = {}
        for item in backlog:
            nodes[item.id] = DependencyNode(
                item_id=item.id,
                dependencies=[d for d in item.dependencies if d in backlog],
            )

        # Arestas reversas
        for node in nodes.values():
            for dep_id in node.dependencies:
                nodes[dep_id].dependents.append(node.item_id)

        cycles = self.detect_cycles(nodes)
        for cycle in cycles:
            logger.warning(f"Dependência circular detectada envolvendo os itens: {cycle}")

        families = self.build_families(backlog, nodes)
        logger.info(
            f"Grafo de dependências montado: {len(nodes)} itens, {len(cycles)} ciclos, {len(families)} famílias"
        )
        return DependencyGraph(nodes=nodes, cycles=cycles, families=families)

    def detect_cycles(self, nodes: Dict[str, DependencyNode]) -> List[List[str]]:
        """
        Detecta ciclos via DFS iterativa com pilha explícita

        Cada quadro da pilha guarda o item e o iterador das suas dependências,
        de modo que cadeias longas não dependem do limite de recursão.

        Args:
            nodes: Nós do grafo

        Returns:
            List[List[str]]: Um ciclo por conjunto distinto de itens, na ordem em que foi percorrido
        """
        visited: Set[str] = set()
        stack: List[str] = []
        on_stack: Set[str] = set()
        cycles: List[List[str]] = []
        seen: Set[frozenset] = set()

        def enter(node_id: str) -> Tuple[str, Iterator[str]]:
            visited.add(node_id)
            stack.append(node_id)
            on_stack.add(node_id)
            return node_id, iter(nodes[node_id].dependencies)

        for root_id in nodes:
            if root_id in visited:
                continue

            frames = [enter(root_id)]
            while frames:
                node_id, deps = frames[-1]
                dep_id = next(deps, None)
                if dep_id is None:
                    frames.pop()
                    stack.pop()
                    on_stack.discard(node_id)
                elif dep_id in on_stack:
                    cycle = stack[stack.index(dep_id):]
                    key = frozenset(cycle)
                    if key not in seen:
                        seen.add(key)
                        cycles.append(list(cycle))
                elif dep_id not in visited:
                    frames.append(enter(dep_id))

        return cycles

    def build_families(
        self, backlog: Backlog, nodes: Dict[str, DependencyNode]
    ) -> List[List[str]]:
        """
        Agrupa os itens que deveriam, idealmente, ser agendados juntos

        Dependências, filhos e pai são tratados como arestas não direcionadas.

        Args:
            backlog: Itens da execução
            nodes: Nós do grafo (dependências já restritas ao backlog)

        Returns:
            List[List[str]]: Famílias na ordem do backlog
        """
        neighbours: Dict[str, Set[str]] = {item_id: set() for item_id in nodes}
        for item in backlog:
            related = list(nodes[item.id].dependencies) + list(item.child_ids)
            if backlog.has_parent_in_batch(item):
                related.append(item.parent_id)
            for other in related:
                neighbours[item.id].add(other)
                neighbours[other].add(item.id)

        order = {item_id: index for index, item_id in enumerate(backlog.ids)}
        families: List[List[str]] = []
        assigned: Set[str] = set()
        for item_id in backlog.ids:
            if item_id in assigned:
                continue
            family = {item_id}
            pending = [item_id]
            while pending:
                current = pending.pop()
                for other in neighbours[current]:
                    if other not in family:
                        family.add(other)
                        pending.append(other)
            assigned.update(family)
            families.append(sorted(family, key=order.__getitem__))

        return families
