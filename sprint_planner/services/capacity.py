import math
from datetime import date, timedelta
from typing import List
from loguru import logger
from ..models.config import CapacityConfig, TeamMember
from ..models.entities import CapacityProfile, MemberCapacity

# Conversão fixa de horas para story points
HOURS_PER_POINT = 8


def add_business_days(start: date, days: int) -> date:
    """
    Soma dias úteis a uma data, pulando finais de semana

    Args:
        start: Data inicial
        days: Quantidade de dias úteis a somar

    Returns:
        date: Data resultante (a própria data inicial quando days == 0)
    """
    result = start
    added = 0
    while added < days:
        result += timedelta(days=1)
        # 5 = Sábado, 6 = Domingo
        if result.weekday() < 5:
            added += 1
    return result


class CapacityCalculator:
    """Serviço responsável pela capacidade do time por iteração"""

    def __init__(self, config: CapacityConfig):
        """
        Inicializa o calculador de capacidade

        Args:
            config: Configuração de capacidade (duração e buffer de velocidade)
        """
        self.config = config

    @property
    def duration_weeks(self) -> float:
        return self.config.iteration_length_days / 7

    def member_points(self, member: TeamMember) -> int:
        """
        Calcula os story points de um membro em uma iteração

        Args:
            member: Membro do time

        Returns:
            int: Pontos já descontado o buffer de velocidade
        """
        raw = member.weekly_available_hours * self.duration_weeks / HOURS_PER_POINT
        # Absorve ruído de ponto flutuante antes do floor (ex.: 6.9999999)
        return math.floor(round(raw * self.config.velocity_buffer_factor, 9))

    def calculate(self, members: List[TeamMember]) -> CapacityProfile:
        """
        Calcula a capacidade do time por iteração

        Args:
            members: Membros do time

        Returns:
            CapacityProfile: Pontos (com buffer) e horas (sem buffer) por iteração
        """
        capacities = []
        for member in members:
            points = self.member_points(member)
            capacities.append(
                MemberCapacity(
                    member_id=member.id,
                    weekly_hours=member.weekly_available_hours,
                    points=points,
                )
            )
            logger.info(
                f"Capacity do membro {member.id}: {member.weekly_available_hours:.1f}h/semana, {points} pontos por iteração"
            )

        total_points = sum(c.points for c in capacities)
        total_hours = sum(m.weekly_available_hours for m in members) * self.duration_weeks
        logger.info(f"Capacity total por iteração: {total_points} pontos, {total_hours:.1f}h")

        return CapacityProfile(
            total_story_points=total_points,
            total_hours=total_hours,
            velocity_buffer_factor=self.config.velocity_buffer_factor,
            members=capacities,
        )
