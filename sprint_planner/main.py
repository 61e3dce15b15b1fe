import json
from pathlib import Path
from typing import List
import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from .models.config import SetupConfig, TeamMember
from .models.entities import AllocationResult, WorkItem
from .genai.client import OpenAIGoalTextClient
from .services.planner import SprintPlanner
from .services.report import ReportGenerator

app = typer.Typer(help="Alocador de Sprints - Planejamento de iterações")
console = Console()

def configurar_logger(output_dir: Path = Path("logs")):
    """Configura o sistema de logs"""
    output_dir.mkdir(exist_ok=True)

    logger.remove()  # Remove handlers padrão
    logger.add(
        output_dir / "alocador_{time}.log",
        rotation="1 day",
        retention="7 days",
        level="INFO",
        encoding='utf-8'
    )
    logger.add(lambda msg: console.print(msg, style="blue", markup=False, end=""), level="INFO")

def verificar_diretorios(output_dir: str = "output"):
    """Verifica e cria diretórios necessários"""
    for dir_name in ["logs", output_dir]:
        Path(dir_name).mkdir(parents=True, exist_ok=True)

def load_json_file(path: Path):
    """
    Carrega um arquivo JSON

    Args:
        path: Caminho do arquivo

    Returns:
        Conteúdo do arquivo
    """
    try:
        return json.loads(path.read_text(encoding='utf-8'))
    except Exception as e:
        logger.error(f"Erro ao carregar arquivo {path}: {str(e)}")
        raise typer.Exit(1)

def resolve_path(base_dir: Path, file_name: str) -> Path:
    """Caminhos relativos são resolvidos a partir do diretório de configuração"""
    path = Path(file_name)
    return path if path.is_absolute() else base_dir / path

def load_backlog(path: Path) -> List[WorkItem]:
    """Carrega os itens do backlog (lista ou objeto com a chave "items")"""
    data = load_json_file(path)
    if isinstance(data, dict):
        data = data.get("items", [])
    return [WorkItem(**item) for item in data]

def load_team(path: Path) -> List[TeamMember]:
    """Carrega os membros do time (lista ou objeto com a chave "members")"""
    data = load_json_file(path)
    if isinstance(data, dict):
        data = data.get("members", [])
    return [TeamMember(**member) for member in data]

def imprimir_resumo(result: AllocationResult):
    """Exibe a tabela de iterações no console"""
    table = Table(title=f"Plano de iterações ({result.strategy})")
    table.add_column("Sprint", style="bold")
    table.add_column("Período")
    table.add_column("Itens", justify="right")
    table.add_column("Pontos", justify="right")
    table.add_column("Utilização", justify="right")
    table.add_column("Risco")
    table.add_column("Objetivo")

    for iteration in result.iterations:
        metrics = iteration.metrics
        assessment = iteration.risk_assessment
        table.add_row(
            iteration.name,
            f"{iteration.start_date.strftime('%d/%m/%Y')} - {iteration.end_date.strftime('%d/%m/%Y')}",
            str(len(iteration.items)),
            str(iteration.total_points),
            f"{metrics.points_utilization:.0f}%" if metrics else "-",
            assessment.risk_level.value if assessment else "-",
            iteration.goal_text,
        )

    console.print(table)
    for diagnostic in result.diagnostics:
        console.print(f"[yellow]Aviso ({diagnostic.kind.value}):[/yellow] {diagnostic.message}")

@app.command()
def planejar(
    config_dir: Path = typer.Option(
        "config",
        help="Diretório com os arquivos de configuração",
        exists=True,
        dir_okay=True,
        file_okay=False
    )
):
    """Distribui o backlog em sprints e gera os relatórios"""
    try:
        # Configuração inicial
        verificar_diretorios()
        configurar_logger()

        logger.info("Iniciando execução do alocador de sprints")
        logger.info(f"Usando diretório de configuração: {config_dir}")

        # Carrega configurações
        logger.info("Carregando configurações...")
        setup_data = load_json_file(config_dir / "setup.json")
        setup = SetupConfig(**setup_data)

        items = load_backlog(resolve_path(config_dir, setup.backlog_file))
        team = load_team(resolve_path(config_dir, setup.team_file))
        logger.info(f"{len(items)} itens de backlog e {len(team)} membros carregados")

        # Gerador externo de objetivos (opcional)
        goal_generator = None
        if setup.goal_text.enabled:
            logger.info("Geração de objetivos via modelo de linguagem habilitada")
            goal_generator = OpenAIGoalTextClient(setup.goal_text)

        # Executa a alocação
        logger.info("Iniciando alocação...")
        planner = SprintPlanner(
            setup.capacity,
            goal_generator=goal_generator,
            goal_timeout=setup.goal_text.timeout_seconds,
        )
        result = planner.allocate(items, team, setup.project)

        # Salva o plano
        output_dir = Path(setup.output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        plan_path = output_dir / "plano.json"
        plan_path.write_text(
            json.dumps(result.to_dict(), ensure_ascii=False, indent=2), encoding='utf-8'
        )
        logger.info(f"Plano salvo em {plan_path}")

        # Gera relatórios
        logger.info("Gerando relatórios...")
        ReportGenerator(result, setup.output_dir, setup.project.name).generate()

        imprimir_resumo(result)
        logger.info("Processo concluído com sucesso!")

    except typer.Exit:
        raise
    except Exception as e:
        logger.error(f"Erro durante execução: {str(e)}")
        raise typer.Exit(1)

if __name__ == "__main__":
    app()
