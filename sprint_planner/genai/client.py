import os
from typing import List, Optional
from loguru import logger
from openai import AsyncOpenAI
from pydantic import BaseModel, Field, ValidationError

from ..models.config import GoalTextConfig, ProjectContext
from ..models.entities import WorkItem
from ..models.diagnostics import GoalGenerationFailure

SYSTEM_PROMPT = (
    "Você é um agile coach. Escreva o objetivo de uma sprint em uma única frase curta, "
    "a partir dos itens planejados. Responda somente com JSON no formato "
    '{"goal": "<objetivo>"}.'
)


class GoalTextResponse(BaseModel):
    """Formato esperado da resposta do modelo"""

    goal: str = Field(min_length=1, max_length=500)


class ParseOutcome(BaseModel):
    """Resultado da leitura da resposta: o objetivo ou o erro, nunca os dois"""

    value: Optional[GoalTextResponse] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.value is not None


def parse_goal_response(raw: str) -> ParseOutcome:
    """
    Lê a resposta do modelo numa única tentativa validada por schema

    Args:
        raw: Conteúdo textual devolvido pelo modelo

    Returns:
        ParseOutcome: Objetivo validado ou a mensagem de erro
    """
    try:
        return ParseOutcome(value=GoalTextResponse.model_validate_json(raw))
    except ValidationError as e:
        return ParseOutcome(error=f"Resposta fora do formato esperado: {e.errors()[0]['msg']}")


def build_prompt(items: List[WorkItem], context: ProjectContext) -> str:
    """Monta a mensagem do usuário com o contexto do projeto e os itens da sprint"""
    lines = [f"Projeto: {context.name}"]
    if context.description:
        lines.append(f"Descrição: {context.description}")
    lines.append("Itens da sprint:")
    for item in items:
        want = f" - quero {item.want}" if item.want else ""
        lines.append(f"- {item.title} ({item.points} pontos, {item.priority.value}){want}")
    return "\n".join(lines)


class OpenAIGoalTextClient:
    """Cliente para geração do objetivo das sprints via API compatível com OpenAI"""

    def __init__(self, config: GoalTextConfig, client: Optional[AsyncOpenAI] = None):
        """
        Inicializa o cliente

        Args:
            config: Modelo, credenciais e timeout
            client: Cliente AsyncOpenAI já configurado (usado nos testes)
        """
        self.config = config
        if client is None:
            api_key = config.api_key or os.getenv("OPENAI_API_KEY")
            if not api_key:
                raise ValueError("OPENAI_API_KEY é obrigatório para gerar os objetivos das sprints")
            client = AsyncOpenAI(
                api_key=api_key,
                base_url=config.base_url,
                timeout=config.timeout_seconds,
                max_retries=0,
            )
        self.client = client
        logger.info(f"Cliente de objetivos inicializado com o modelo {config.model}")

    async def __call__(self, items: List[WorkItem], context: ProjectContext) -> str:
        """
        Gera o objetivo de uma sprint

        Raises:
            GoalGenerationFailure: Resposta vazia ou fora do formato esperado
        """
        response = await self.client.chat.completions.create(
            model=self.config.model,
            temperature=self.config.temperature,
            response_format={"type": "json_object"},
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_prompt(items, context)},
            ],
        )
        raw = response.choices[0].message.content or ""
        outcome = parse_goal_response(raw)
        if not outcome.ok:
            raise GoalGenerationFailure(outcome.error)
        return outcome.value.goal.strip()
