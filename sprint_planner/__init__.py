"""
Alocador de Sprints

Este pacote implementa o motor de alocação de iterações para times ágeis: recebe um
backlog priorizado com dependências e relações pai/filho, a capacidade do time e
distribui os itens em sprints de tamanho fixo, calculando risco, mitigações e
recomendações para cada uma.
"""

__version__ = "1.0.0"
