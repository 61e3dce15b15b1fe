import pytest
from datetime import date
from sprint_planner.models.entities import (
    ActionPriority,
    Iteration,
    IterationMetrics,
    PriorityDistribution,
    RiskAssessment,
    RiskFactors,
    RiskLevel,
    WorkItem,
)
from sprint_planner.services.mitigation import MitigationAdvisor

@pytest.fixture
def advisor():
    """Fixture para o gerador de mitigações"""
    return MitigationAdvisor()

@pytest.fixture
def iteration():
    """Fixture para uma iteração com itens complexos, arriscados e dependências externas"""
    return Iteration(
        sequence=12,
        start_date=date(2024, 3, 18),
        end_date=date(2024, 4, 4),
        items=[
            WorkItem(id="A", title="Integração bancária", complexity=5, risk=4, dependencies=["EXT-1"]),
            WorkItem(id="B", title="Tela de extrato", complexity=2, risk=2, dependencies=["A"]),
        ],
        metrics=IterationMetrics(
            item_count=2,
            total_points=12,
            total_hours=0,
            points_utilization=120,
            hours_utilization=0,
            priority_distribution=PriorityDistribution(medium=2),
            avg_business_value=3,
            avg_complexity=3.5,
            is_over_capacity=True,
        ),
    )

def make_assessment(**factors):
    """Cria uma avaliação com os fatores informados"""
    return RiskAssessment(
        overall_risk=5.0,
        risk_level=RiskLevel.HIGH,
        risk_factors=RiskFactors(**factors),
        risk_score=5.0,
        confidence=0.5,
    )

def test_no_mitigation_below_thresholds(advisor, iteration):
    """Testa que fatores abaixo dos limiares não geram mitigações"""
    assessment = make_assessment(
        technical_complexity=2.0, dependency_risk=1.5, capacity_risk=3.0, uncertainty_risk=2.0, velocity_risk=1.0
    )

    assert advisor.advise(iteration, assessment) == []

def test_all_rules_sorted_by_priority(advisor, iteration):
    """Testa todas as regras e a ordenação de critical para low"""
    assessment = make_assessment(
        technical_complexity=2.5, dependency_risk=2.0, capacity_risk=5.0, uncertainty_risk=2.5, velocity_risk=1.2
    )
    mitigations = advisor.advise(iteration, assessment)

    assert [m.type for m in mitigations] == ["capacity", "technical", "dependency", "uncertainty", "velocity"]
    assert [m.priority for m in mitigations] == [
        ActionPriority.CRITICAL,
        ActionPriority.HIGH,
        ActionPriority.HIGH,
        ActionPriority.MEDIUM,
        ActionPriority.MEDIUM,
    ]

def test_capacity_mitigation(advisor, iteration):
    """Testa a mitigação de capacidade com a utilização atual"""
    mitigations = advisor.advise(iteration, make_assessment(capacity_risk=5.0))

    assert len(mitigations) == 1
    assert mitigations[0].action == "scope-adjustment"
    assert "120%" in mitigations[0].description

def test_technical_mitigation_names_complex_items(advisor, iteration):
    """Testa que a mitigação técnica cita os itens complexos"""
    mitigation = advisor.advise(iteration, make_assessment(technical_complexity=2.5))[0]

    assert mitigation.action == "story-splitting"
    assert mitigation.item_ids == ["A"]
    assert '"Integração bancária"' in mitigation.description
    assert "Tela de extrato" not in mitigation.description

def test_dependency_mitigation_lists_external(advisor, iteration):
    """Testa que a mitigação de dependência cita apenas as dependências externas"""
    mitigation = advisor.advise(iteration, make_assessment(dependency_risk=1.8))[0]

    assert mitigation.action == "dependency-resolution"
    assert mitigation.effort == "high"
    assert mitigation.item_ids == ["EXT-1"]

def test_uncertainty_mitigation_names_risky_items(advisor, iteration):
    """Testa que a mitigação de incerteza cita os itens de risco alto"""
    mitigation = advisor.advise(iteration, make_assessment(uncertainty_risk=2.1))[0]

    assert mitigation.action == "estimation-review"
    assert mitigation.item_ids == ["A"]

def test_velocity_mitigation(advisor, iteration):
    """Testa a mitigação de velocidade"""
    mitigation = advisor.advise(iteration, make_assessment(velocity_risk=1.2))[0]

    assert mitigation.type == "velocity"
    assert mitigation.action == "velocity-tracking"
    assert "Sprint 12" in mitigation.description

def test_dependency_mitigation_lists_missing_family(advisor):
    """Testa que a mitigação de dependência cita filhos e pai fora da iteração"""
    iteration = Iteration(
        sequence=2,
        start_date=date(2024, 4, 1),
        end_date=date(2024, 4, 18),
        items=[
            WorkItem(id="EPIC-1", title="Pagamentos", child_ids=["US-1", "US-2"]),
            WorkItem(id="US-1", title="Cartão", parent_id="EPIC-1"),
            WorkItem(id="US-9", title="Boleto", parent_id="EPIC-2", dependencies=["EXT-1"]),
        ],
    )

    mitigation = advisor.advise(iteration, make_assessment(dependency_risk=2.0))[0]

    assert mitigation.item_ids == ["US-2", "EXT-1", "EPIC-2"]
    assert "US-2, EXT-1, EPIC-2" in mitigation.description
