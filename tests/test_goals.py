import asyncio
import time
import pytest
from datetime import date
from loguru import logger
from sprint_planner.models.config import ProjectContext
from sprint_planner.models.entities import GoalSource, Iteration, WorkItem
from sprint_planner.services.goals import (
    GoalTextService,
    fallback_goal_text,
    normalize_intent,
)

@pytest.fixture
def context():
    """Fixture para o contexto do projeto"""
    return ProjectContext(start_date="2024-03-18", name="Portal")

def make_iteration(sequence, items):
    """Cria uma iteração com os itens informados"""
    return Iteration(sequence=sequence, start_date=date(2024, 3, 18), end_date=date(2024, 4, 4), items=items)

@pytest.fixture
def iterations():
    """Fixture para duas iterações"""
    return [
        make_iteration(1, [WorkItem(id="A", title="Login", want="I want to log in")]),
        make_iteration(2, [WorkItem(id="B", title="Busca", want="search products")]),
    ]

@pytest.mark.parametrize("text,expected", [
    ("I want to export reports.", "Export reports"),
    ("Implementar   login  social", "Login social"),
    ("quero ver o extrato", "Ver o extrato"),
    ("Search products", "Search products"),
])
def test_normalize_intent(text, expected):
    """Testa a normalização das intenções"""
    assert normalize_intent(text) == expected

def test_fallback_without_items():
    """Testa o objetivo local de uma iteração vazia"""
    assert fallback_goal_text([]) == "Concluir os itens planejados para esta iteração."

def test_fallback_with_few_items():
    """Testa o objetivo local com até dois itens"""
    items = [WorkItem(id="A", title="Login"), WorkItem(id="B", title="Busca")]

    assert fallback_goal_text(items) == 'Entregar os itens principais: "Login" e "Busca".'

def test_fallback_ranks_by_frequency():
    """Testa a ordenação por frequência com desempate pela primeira aparição"""
    items = [
        WorkItem(id="1", title="T1", want="search products"),
        WorkItem(id="2", title="T2", want="export reports"),
        WorkItem(id="3", title="T3", want="Export reports."),
        WorkItem(id="4", title="T4", want="log in"),
        WorkItem(id="5", title="T5", want="pay orders"),
    ]

    assert fallback_goal_text(items) == "Foco em entregar: Export reports, Search products, Log in."

def test_fallback_is_deterministic():
    """Testa que o objetivo local é sempre o mesmo para a mesma entrada"""
    items = [WorkItem(id=str(i), title=f"Item {i}", want=f"feature {i % 2}") for i in range(6)]

    assert fallback_goal_text(items) == fallback_goal_text(list(items))

def test_service_without_generator(iterations, context):
    """Testa o serviço sem gerador externo"""
    text, source = asyncio.run(GoalTextService().goal_for(iterations[0], context))

    assert source == GoalSource.FALLBACK
    assert text == fallback_goal_text(iterations[0].items)

def test_service_with_async_generator(iterations, context):
    """Testa o serviço com um gerador assíncrono"""
    async def generator(items, ctx):
        return f"  Objetivo de {ctx.name}: {items[0].title}  "

    text, source = asyncio.run(GoalTextService(generator).goal_for(iterations[0], context))

    assert source == GoalSource.GENERATED
    assert text == "Objetivo de Portal: Login"

def test_service_with_sync_generator(iterations, context):
    """Testa o serviço com um gerador síncrono"""
    service = GoalTextService(lambda items, ctx: "Objetivo síncrono")
    text, source = asyncio.run(service.goal_for(iterations[0], context))

    assert (text, source) == ("Objetivo síncrono", GoalSource.GENERATED)

def test_service_generator_failure(iterations, context):
    """Testa o fallback quando o gerador falha"""
    def generator(items, ctx):
        raise RuntimeError("serviço indisponível")

    text, source = asyncio.run(GoalTextService(generator).goal_for(iterations[0], context))

    assert source == GoalSource.FALLBACK
    assert text == fallback_goal_text(iterations[0].items)

def test_service_empty_response(iterations, context):
    """Testa o fallback quando o gerador devolve texto vazio"""
    async def generator(items, ctx):
        return "   "

    _, source = asyncio.run(GoalTextService(generator).goal_for(iterations[0], context))

    assert source == GoalSource.FALLBACK

def test_service_timeout(iterations, context):
    """Testa o fallback quando o gerador excede o timeout"""
    async def generator(items, ctx):
        await asyncio.sleep(5)
        return "tarde demais"

    service = GoalTextService(generator, timeout=0.01)
    text, source = asyncio.run(service.goal_for(iterations[0], context))

    assert source == GoalSource.FALLBACK
    assert text == fallback_goal_text(iterations[0].items)

def test_goals_for_all_iterations(iterations, context):
    """Testa a geração dos objetivos de todas as iterações"""
    async def generator(items, ctx):
        return f"Meta {items[0].id}"

    goals = asyncio.run(GoalTextService(generator).goals_for(iterations, context))

    assert goals == [("Meta A", GoalSource.GENERATED), ("Meta B", GoalSource.GENERATED)]

def test_cancel_single_iteration(iterations, context):
    """Testa que cancelar uma chamada mantém as demais"""
    async def generator(items, ctx):
        if items[0].id == "A":
            await asyncio.sleep(5)
        return f"Meta {items[0].id}"

    service = GoalTextService(generator)

    async def run():
        batch = service.start(iterations, context)
        await asyncio.sleep(0.05)
        cancelled = batch.cancel(1)
        return batch, cancelled, await batch.wait()

    batch, cancelled, goals = asyncio.run(run())

    assert cancelled is True
    assert goals[0] == (fallback_goal_text(iterations[0].items), GoalSource.FALLBACK)
    assert goals[1] == ("Meta B", GoalSource.GENERATED)
    assert batch.cancel(1) is False

def test_cancel_is_scoped_to_its_batch(iterations, context):
    """Testa que duas execuções concorrentes no mesmo serviço têm tasks independentes"""
    async def generator(items, ctx):
        await asyncio.sleep(0.2)
        return f"Meta {items[0].id}"

    service = GoalTextService(generator)

    async def run():
        first = service.start(iterations, context)
        second = service.start(iterations, context)
        await asyncio.sleep(0.05)
        cancelled = first.cancel(1)
        return cancelled, await asyncio.gather(first.wait(), second.wait())

    cancelled, (first_goals, second_goals) = asyncio.run(run())

    assert cancelled is True
    assert first_goals == [
        (fallback_goal_text(iterations[0].items), GoalSource.FALLBACK),
        ("Meta B", GoalSource.GENERATED),
    ]
    assert second_goals == [("Meta A", GoalSource.GENERATED), ("Meta B", GoalSource.GENERATED)]

def test_sync_generator_timeout_does_not_block(iterations, context):
    """Testa que um gerador síncrono lento não segura a execução além do timeout"""
    def generator(items, ctx):
        time.sleep(2)
        return "tarde demais"

    service = GoalTextService(generator, timeout=0.2)
    started = time.monotonic()
    goals = asyncio.run(service.goals_for(iterations, context))
    elapsed = time.monotonic() - started

    assert elapsed < 1.5
    assert [source for _, source in goals] == [GoalSource.FALLBACK, GoalSource.FALLBACK]

def test_timeout_message_keeps_fraction(iterations, context):
    """Testa que o aviso de timeout mostra o valor configurado sem arredondar"""
    async def generator(items, ctx):
        await asyncio.sleep(5)
        return "tarde demais"

    messages = []
    handler_id = logger.add(lambda message: messages.append(message.record["message"]), level="WARNING")
    try:
        asyncio.run(GoalTextService(generator, timeout=0.25).goal_for(iterations[0], context))
    finally:
        logger.remove(handler_id)

    assert any(message.startswith("Timeout de 0.25s") for message in messages)
