import asyncio
import inspect
import re
from concurrent.futures import ThreadPoolExecutor
from collections import Counter
from functools import partial
from typing import Awaitable, Callable, Dict, List, Optional, Tuple, Union
from loguru import logger
from ..models.config import ProjectContext
from ..models.entities import GoalSource, Iteration, WorkItem

GoalTextGenerator = Callable[[List[WorkItem], ProjectContext], Union[str, Awaitable[str]]]

DEFAULT_TIMEOUT_SECONDS = 30.0

# Verbos genéricos removidos do início das intenções
_INTENT_PREFIX = re.compile(
    r"^(i want to |to |implement |add |create |enable |support |"
    r"quero |poder |implementar |adicionar |criar |habilitar |suportar )",
    re.IGNORECASE,
)


def normalize_intent(text: str) -> str:
    """
    Normaliza uma intenção ("want") para compor o objetivo

    Args:
        text: Texto livre da intenção

    Returns:
        str: Intenção sem o verbo genérico, com a primeira letra maiúscula
    """
    phrase = " ".join(text.lower().split()).rstrip(".")
    phrase = _INTENT_PREFIX.sub("", phrase)
    return phrase[:1].upper() + phrase[1:]


def fallback_goal_text(items: List[WorkItem]) -> str:
    """
    Gera o objetivo da iteração localmente, de forma determinística

    As intenções mais frequentes vêm primeiro; empates seguem a primeira aparição.

    Args:
        items: Itens da iteração

    Returns:
        str: Texto do objetivo
    """
    if not items:
        return "Concluir os itens planejados para esta iteração."
    if len(items) <= 2:
        titles = " e ".join(f'"{item.title}"' for item in items)
        return f"Entregar os itens principais: {titles}."

    phrases = [normalize_intent(item.want or item.title) for item in items]
    phrases = [p for p in phrases if p]
    counts = Counter(phrases)
    first_seen = {}
    for index, phrase in enumerate(phrases):
        first_seen.setdefault(phrase, index)
    top = sorted(counts, key=lambda p: (-counts[p], first_seen[p]))[:3]
    if not top:
        return f"Concluir {len(items)} itens focados nas funcionalidades principais."
    return f"Foco em entregar: {', '.join(top)}."


class GoalBatch:
    """
    Chamadas de objetivo de uma única execução

    Cada execução tem as suas próprias tasks e o seu próprio pool de threads,
    então execuções concorrentes no mesmo serviço não interferem entre si.
    """

    def __init__(
        self,
        iterations: List[Iteration],
        tasks: Dict[int, "asyncio.Task"],
        executor: Optional[ThreadPoolExecutor] = None,
    ):
        self.iterations = iterations
        self._tasks = tasks
        self._executor = executor

    def cancel(self, sequence: int) -> bool:
        """
        Cancela a geração do objetivo de uma iteração em andamento

        Args:
            sequence: Número da iteração

        Returns:
            bool: True se havia uma chamada pendente para a iteração
        """
        task = self._tasks.get(sequence)
        if task is None or task.done():
            return False
        return task.cancel()

    async def wait(self) -> List[Tuple[str, GoalSource]]:
        """
        Aguarda todas as chamadas da execução

        Iterações canceladas recebem o texto local; as demais mantêm o seu resultado.
        """
        try:
            results = await asyncio.gather(*self._tasks.values(), return_exceptions=True)
        finally:
            # Não espera geradores síncronos que já estouraram o timeout
            if self._executor is not None:
                self._executor.shutdown(wait=False, cancel_futures=True)

        goals = []
        for iteration, result in zip(self.iterations, results):
            if isinstance(result, BaseException):
                logger.warning(f"Geração do objetivo da {iteration.name} cancelada, usando texto local")
                goals.append((fallback_goal_text(iteration.items), GoalSource.FALLBACK))
            else:
                goals.append(result)
        return goals


class GoalTextService:
    """Obtém o objetivo de cada iteração do gerador externo, com fallback local"""

    def __init__(
        self,
        generator: Optional[GoalTextGenerator] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        """
        Inicializa o serviço de objetivos

        Args:
            generator: Função externa (síncrona ou assíncrona); None usa só o fallback
            timeout: Tempo máximo de cada chamada em segundos
        """
        self.generator = generator
        self.timeout = timeout

    def _is_async(self) -> bool:
        return inspect.iscoroutinefunction(self.generator) or inspect.iscoroutinefunction(
            getattr(self.generator, "__call__", None)
        )

    def _new_executor(self, size: int) -> Optional[ThreadPoolExecutor]:
        """Pool próprio para geradores síncronos; None quando não é necessário"""
        if self.generator is None or self._is_async():
            return None
        return ThreadPoolExecutor(max_workers=max(1, size), thread_name_prefix="goal-text")

    async def _call_generator(
        self,
        items: List[WorkItem],
        context: ProjectContext,
        executor: Optional[ThreadPoolExecutor],
    ) -> str:
        if self._is_async():
            result = await self.generator(items, context)
        else:
            loop = asyncio.get_running_loop()
            result = await loop.run_in_executor(executor, partial(self.generator, items, context))
            if inspect.isawaitable(result):
                result = await result
        if not isinstance(result, str) or not result.strip():
            raise ValueError("Gerador retornou um objetivo vazio")
        return result.strip()

    async def goal_for(
        self,
        iteration: Iteration,
        context: ProjectContext,
        executor: Optional[ThreadPoolExecutor] = None,
    ) -> Tuple[str, GoalSource]:
        """
        Objetivo de uma única iteração

        Qualquer falha ou timeout do gerador cai no texto determinístico.

        Args:
            iteration: Iteração com os itens já alocados
            context: Contexto do projeto
            executor: Pool para geradores síncronos; sem ele, um pool próprio é criado

        Returns:
            Tuple[str, GoalSource]: Texto e origem
        """
        if self.generator is None:
            return fallback_goal_text(iteration.items), GoalSource.FALLBACK

        owned = None
        if executor is None:
            executor = owned = self._new_executor(1)
        try:
            text = await asyncio.wait_for(
                self._call_generator(iteration.items, context, executor), timeout=self.timeout
            )
            return text, GoalSource.GENERATED
        except asyncio.TimeoutError:
            logger.warning(
                f"Timeout de {self.timeout:g}s ao gerar o objetivo da {iteration.name}, usando texto local"
            )
        except Exception as e:
            logger.warning(f"Erro ao gerar o objetivo da {iteration.name}: {str(e)}. Usando texto local")
        finally:
            if owned is not None:
                owned.shutdown(wait=False, cancel_futures=True)
        return fallback_goal_text(iteration.items), GoalSource.FALLBACK

    def start(self, iterations: List[Iteration], context: ProjectContext) -> GoalBatch:
        """
        Dispara as chamadas de todas as iterações em paralelo

        Deve ser chamado dentro de um loop em execução.

        Returns:
            GoalBatch: Handle da execução, usado para cancelar e aguardar as chamadas
        """
        executor = self._new_executor(len(iterations))
        tasks = {
            iteration.sequence: asyncio.ensure_future(self.goal_for(iteration, context, executor))
            for iteration in iterations
        }
        return GoalBatch(iterations, tasks, executor)

    async def goals_for(
        self, iterations: List[Iteration], context: ProjectContext
    ) -> List[Tuple[str, GoalSource]]:
        """Objetivos de todas as iterações, com as chamadas em paralelo"""
        return await self.start(iterations, context).wait()
