import asyncio
import time
import pytest
from datetime import datetime
from sprint_planner.models.config import CapacityConfig, ProjectContext, TeamMember
from sprint_planner.models.entities import GoalSource, WorkItem
from sprint_planner.models.diagnostics import DiagnosticKind, ValidationError
from sprint_planner.services.allocator import DEPENDENCY_AWARE_STRATEGY, SIMPLE_STRATEGY
from sprint_planner.services.planner import SprintPlanner, allocate

@pytest.fixture
def capacity_config():
    """Fixture para capacity de 10 pontos por iteração (40h/semana, sem buffer)"""
    return CapacityConfig(velocity_buffer_factor=1.0)

@pytest.fixture
def team():
    """Fixture para um time de um membro"""
    return [TeamMember(id="dev1", weekly_available_hours=40)]

@pytest.fixture
def context():
    """Fixture para o contexto do projeto"""
    return ProjectContext(start_date="2024-03-18", name="Portal")

@pytest.fixture
def now():
    """Fixture para o instante de referência"""
    return datetime(2024, 3, 1, 9, 0)

@pytest.fixture
def backlog_items():
    """Fixture para um backlog sem hierarquia"""
    return [WorkItem(id=f"US-{p}", title=f"Item {p}", points=p, want=f"feature {p}") for p in [8, 5, 3, 2, 1]]

def test_allocate_simple_backlog(backlog_items, team, capacity_config, context, now):
    """Testa o ponto de entrada com o backlog 8, 5, 3, 2, 1"""
    iterations, diagnostics = allocate(backlog_items, team, capacity_config, context, now=now)

    assert len(iterations) == 2
    assert [it.total_points for it in iterations] == [10, 9]
    assert diagnostics == []
    for iteration in iterations:
        assert iteration.metrics is not None
        assert iteration.risk_assessment is not None
        assert iteration.documentation is not None
        assert iteration.goal_text
        assert iteration.goal_source == GoalSource.FALLBACK

def test_result_metadata(backlog_items, team, capacity_config, context, now):
    """Testa os dados de apoio do resultado"""
    result = SprintPlanner(capacity_config).allocate(backlog_items, team, context, now=now)

    assert result.strategy == SIMPLE_STRATEGY
    assert result.generated_at == now
    assert result.capacity.total_story_points == 10
    assert result.total_points == 19
    assert result.unscheduled_item_ids == []
    assert len(result.families) == 5

def test_parent_children_scenario(team, capacity_config, context, now):
    """Testa o pai de 5 pontos com três filhos de 4 pontos"""
    items = [
        WorkItem(id="P", title="Pai", points=5),
        WorkItem(id="C1", title="Filho 1", points=4, parent_id="P"),
        WorkItem(id="C2", title="Filho 2", points=4, parent_id="P"),
        WorkItem(id="C3", title="Filho 3", points=4, parent_id="P"),
    ]
    result = SprintPlanner(capacity_config).allocate(items, team, context, now=now)

    assert result.strategy == DEPENDENCY_AWARE_STRATEGY
    assert [it.item_ids for it in result.iterations] == [["P", "C1"], ["C2", "C3"]]
    assert result.iterations[0].items[0].child_ids == ["C1", "C2", "C3"]
    assert result.iterations[0].metrics.split_families == 1

def test_oversized_item_scenario(team, capacity_config, context, now):
    """Testa o item de 50 pontos com capacity de 10"""
    items = [WorkItem(id="BIG", title="Gigante", points=50)]
    iterations, diagnostics = allocate(items, team, capacity_config, context, now=now)

    assert len(iterations) == 1
    assert iterations[0].forced
    assert iterations[0].metrics.is_over_capacity
    assert iterations[0].risk_assessment.risk_factors.capacity_risk == 5.0
    assert [d.kind for d in diagnostics] == [DiagnosticKind.CAPACITY_EXCEEDED]
    assert [m.type for m in iterations[0].mitigations][0] == "capacity"

def test_cycle_scenario(team, capacity_config, context, now):
    """Testa que um ciclo A <-> B gera diagnóstico e os dois itens são agendados"""
    items = [
        WorkItem(id="A", title="A", points=3, dependencies=["B"]),
        WorkItem(id="B", title="B", points=3, dependencies=["A"]),
    ]
    iterations, diagnostics = allocate(items, team, capacity_config, context, now=now)

    assert [d.kind for d in diagnostics] == [DiagnosticKind.CYCLE_DETECTED]
    assert sorted(i for it in iterations for i in it.item_ids) == ["A", "B"]

def test_idempotent(backlog_items, team, capacity_config, context, now):
    """Testa que a mesma entrada gera o mesmo resultado"""
    planner = SprintPlanner(capacity_config)
    first = planner.allocate(backlog_items, team, context, now=now)
    second = planner.allocate(backlog_items, team, context, now=now)

    assert first.to_dict() == second.to_dict()

def test_input_items_not_mutated(team, capacity_config, context, now):
    """Testa que os itens de entrada não são alterados"""
    items = [WorkItem(id="P", title="Pai", points=2), WorkItem(id="C", title="Filho", points=2, parent_id="P")]
    SprintPlanner(capacity_config).allocate(items, team, context, now=now)

    assert items[0].child_ids == []
    assert items[0].priority_score is None

def test_goal_generator_used(backlog_items, team, capacity_config, context, now):
    """Testa o uso do gerador externo de objetivos"""
    async def generator(items, ctx):
        return f"Meta com {len(items)} itens"

    iterations, diagnostics = allocate(backlog_items, team, capacity_config, context, generator, now=now)

    assert [it.goal_text for it in iterations] == ["Meta com 2 itens", "Meta com 3 itens"]
    assert all(it.goal_source == GoalSource.GENERATED for it in iterations)
    assert diagnostics == []

def test_goal_generator_failure_is_not_fatal(backlog_items, team, capacity_config, context, now):
    """Testa que a falha do gerador não interrompe a alocação"""
    def generator(items, ctx):
        raise RuntimeError("fora do ar")

    iterations, diagnostics = allocate(backlog_items, team, capacity_config, context, generator, now=now)

    assert len(iterations) == 2
    assert all(it.goal_source == GoalSource.FALLBACK for it in iterations)
    assert diagnostics == []

def test_validation_empty_items(team, capacity_config, context):
    """Testa a rejeição de backlog vazio"""
    with pytest.raises(ValidationError):
        allocate([], team, capacity_config, context)

def test_validation_empty_team(backlog_items, capacity_config, context):
    """Testa a rejeição de time vazio"""
    with pytest.raises(ValidationError):
        allocate(backlog_items, [], capacity_config, context)

def test_validation_missing_context(backlog_items, team, capacity_config):
    """Testa a rejeição de contexto ausente"""
    with pytest.raises(ValidationError):
        allocate(backlog_items, team, capacity_config, None)

def test_validation_duplicate_ids(team, capacity_config, context):
    """Testa a rejeição de ids duplicados"""
    items = [WorkItem(id="A", title="A"), WorkItem(id="A", title="A de novo")]

    with pytest.raises(ValidationError, match="A"):
        allocate(items, team, capacity_config, context)

def test_validation_zero_capacity(backlog_items, capacity_config, context):
    """Testa a rejeição de capacity zero"""
    team = [TeamMember(id="dev1", weekly_available_hours=2)]

    with pytest.raises(ValidationError):
        allocate(backlog_items, team, capacity_config, context)

def test_parent_before_child_property(team, capacity_config, context, now):
    """Testa que nenhum filho é agendado antes do pai"""
    items = [
        WorkItem(id="E1", title="Épico 1", points=6, priority="High"),
        WorkItem(id="F1", title="Feature 1", points=5, parent_id="E1"),
        WorkItem(id="S1", title="História 1", points=3, parent_id="F1"),
        WorkItem(id="S2", title="História 2", points=7, parent_id="F1"),
        WorkItem(id="E2", title="Épico 2", points=2),
        WorkItem(id="S3", title="História 3", points=9, parent_id="E2"),
        WorkItem(id="SOLO", title="Solto", points=4, priority="Critical"),
    ]
    iterations, _ = allocate(items, team, capacity_config, context, now=now)
    placement = {i: it.sequence for it in iterations for i in it.item_ids}

    assert sorted(placement) == sorted(i.id for i in items)
    assert sum(it.total_points for it in iterations) == sum(i.points for i in items)
    for item in items:
        if item.parent_id:
            assert placement[item.parent_id] <= placement[item.id]

def test_long_dependency_chain(team, capacity_config, context, now):
    """Testa a alocação de uma cadeia de 1500 dependências"""
    items = [
        WorkItem(id=f"I{i}", title=f"Item {i}", points=0, dependencies=[f"I{i + 1}"] if i < 1499 else [])
        for i in range(1500)
    ]

    iterations, diagnostics = allocate(items, team, capacity_config, context, now=now)

    assert len(iterations) == 1
    assert len(iterations[0].items) == 1500
    assert diagnostics == []

def test_long_parent_chain(team, capacity_config, context, now):
    """Testa a alocação de uma hierarquia de 1500 níveis"""
    items = [
        WorkItem(id=f"I{i}", title=f"Item {i}", points=0, parent_id=f"I{i - 1}" if i else None)
        for i in range(1500)
    ]

    result = SprintPlanner(capacity_config).allocate(items, team, context, now=now)

    assert result.strategy == DEPENDENCY_AWARE_STRATEGY
    assert [it.item_ids for it in result.iterations] == [[f"I{i}" for i in range(1500)]]

def test_slow_sync_generator_respects_timeout(backlog_items, team, capacity_config, context, now):
    """Testa que um gerador síncrono lento não atrasa o retorno além do timeout"""
    def generator(items, ctx):
        time.sleep(2)
        return "tarde demais"

    planner = SprintPlanner(capacity_config, generator, goal_timeout=0.2)
    started = time.monotonic()
    result = planner.allocate(backlog_items, team, context, now=now)
    elapsed = time.monotonic() - started

    assert elapsed < 1.5
    assert all(it.goal_source == GoalSource.FALLBACK for it in result.iterations)

def test_concurrent_runs_on_one_planner(backlog_items, team, capacity_config, context, now):
    """Testa duas alocações concorrentes no mesmo planner"""
    async def generator(items, ctx):
        await asyncio.sleep(0.05)
        return f"Meta {ctx.name} com {len(items)} itens"

    planner = SprintPlanner(capacity_config, generator)
    other_context = ProjectContext(start_date="2024-03-18", name="Loja")
    other_items = [WorkItem(id="X-1", title="Carrinho", points=4)]

    async def run():
        return await asyncio.gather(
            planner.allocate_async(backlog_items, team, context, now=now),
            planner.allocate_async(other_items, team, other_context, now=now),
        )

    first, second = asyncio.run(run())

    assert [it.goal_text for it in first.iterations] == ["Meta Portal com 2 itens", "Meta Portal com 3 itens"]
    assert [it.goal_text for it in second.iterations] == ["Meta Loja com 1 itens"]
    assert all(it.goal_source == GoalSource.GENERATED for it in first.iterations + second.iterations)
