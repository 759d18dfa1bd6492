"""Tutor orchestration: classify, route, invoke with failover."""

import time
from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional, Sequence, Tuple, Union

from linkdok.core.cancellation import CancellationToken
from linkdok.core.exceptions import ExhaustionError, RateLimitedError, RequestCancelledError
from linkdok.core.interfaces import IProvider, TokenCallback
from linkdok.core.models import (
    Attachment,
    ChatMessage,
    Intent,
    ResourceContent,
    ThinkingMode,
    TutorResult,
)
from linkdok.infrastructure.observability.metrics import MetricsCollector
from linkdok.utils.logger import get_logger
from . import prompts
from .classifier import classify_intent
from .registry import AUTO, ModelRegistry, default_registry
from .thinking import should_think

logger = get_logger(__name__)

EMPTY_QUESTION_ANSWER = "Please ask a valid question."
NO_RESOURCES_ANSWER = (
    "This category has no resources yet. Please add links so I can learn from them."
)


@dataclass
class AskOptions:
    """Per-request options for TutorOrchestrator.ask()."""

    model: str = AUTO
    attachments: List[Attachment] = field(default_factory=list)
    history: List[ChatMessage] = field(default_factory=list)
    thinking_mode: Union[ThinkingMode, str] = ThinkingMode.AUTO
    cancel_token: Optional[CancellationToken] = None
    on_token: Optional[TokenCallback] = None
    on_reasoning_token: Optional[TokenCallback] = None
    playground: bool = False


class TutorOrchestrator:
    """Public entry point for chat questions."""

    def __init__(
        self,
        primary: IProvider,
        secondary: IProvider,
        registry: ModelRegistry = default_registry,
        config: Optional[Dict[str, Any]] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        config = config or {}
        self.primary = primary
        self.secondary = secondary
        self.registry = registry
        self.metrics = metrics

        self.history_window = config.get("history_window", 8)
        self.playground_history_window = config.get("playground_history_window", 10)
        self.max_resource_chars = config.get("max_resource_chars", 15000)
        self.max_context_chars = config.get("max_context_chars", 60000)

    async def ask(
        self,
        question: str,
        resources: Optional[Sequence[ResourceContent]] = None,
        options: Optional[AskOptions] = None,
    ) -> TutorResult:
        """
        Answer a question, trying candidate models in routing order.

        Args:
            question: The user's question
            resources: Extracted text of the category's saved links
            options: Model choice, history, attachments, callbacks, etc.

        Returns:
            TutorResult with the answer and the model that produced it

        Raises:
            UnknownModelError: An explicit model has no registry entry
            RequestCancelledError: Caller cancelled or a call timed out
            RateLimitedError: A provider throttled the client
            ExhaustionError: Every candidate on both providers failed
        """
        options = options or AskOptions()
        resources = list(resources or [])

        if not question or not question.strip():
            return TutorResult(answer=EMPTY_QUESTION_ANSWER)

        if not options.playground and not resources and not options.attachments:
            return TutorResult(answer=NO_RESOURCES_ANSWER)

        intent = classify_intent(question)
        candidates = self.registry.resolve_candidates(intent, options.model)
        messages, has_materials = self._build_messages(question, resources, options)

        logger.info(
            f"Intent: {intent.value} | Model: {options.model} | Candidates: {candidates}",
            extra={"intent": intent.value, "model": options.model},
        )

        start_time = time.time()
        try:
            model_used, answer, used_thinking = await self._run(
                question, intent, candidates, messages, options
            )
        except RequestCancelledError as e:
            self._record("cancelled_timeout" if e.timed_out else "cancelled", start_time)
            raise
        except RateLimitedError:
            self._record("rate_limited", start_time)
            raise
        except ExhaustionError as e:
            self._record("exhausted", start_time)
            logger.error(f"Tutor exhausted all candidates: {e}")
            raise

        self._record("success", start_time, model_used)
        return TutorResult(
            answer=answer,
            model_used=model_used,
            intent_used=intent,
            used_thinking=used_thinking,
            based_on_resources=not options.playground and has_materials,
            metadata={"latency_ms": int((time.time() - start_time) * 1000)},
        )

    def _build_messages(
        self,
        question: str,
        resources: List[ResourceContent],
        options: AskOptions,
    ) -> Tuple[List[Dict[str, Any]], bool]:
        if options.playground:
            user_content = prompts.build_user_content(question, options.attachments)
            messages = prompts.build_messages(
                prompts.PLAYGROUND,
                options.history,
                self.playground_history_window,
                user_content,
            )
            return messages, False

        materials = prompts.combine_resources(
            resources, self.max_resource_chars, self.max_context_chars
        )
        has_materials = bool(materials.strip())
        system_prompt = (
            prompts.TUTOR_WITH_MATERIALS if has_materials else prompts.TUTOR_WITHOUT_MATERIALS
        )
        user_content = prompts.build_user_content(
            prompts.tutor_user_prompt(question, materials), options.attachments
        )
        messages = prompts.build_messages(
            system_prompt, options.history, self.history_window, user_content
        )
        return messages, has_materials

    async def _run(
        self,
        question: str,
        intent: Intent,
        candidates: List[str],
        messages: List[Dict[str, Any]],
        options: AskOptions,
    ) -> Tuple[str, str, bool]:
        last_error: Optional[BaseException] = None

        for model_id in candidates:
            use_thinking = should_think(
                question, intent, model_id, options.thinking_mode, self.registry
            )
            logger.info(
                f"Trying {self.primary.name} {model_id}"
                f"{' [thinking]' if use_thinking else ''}",
                extra={"candidate": model_id, "used_thinking": use_thinking},
            )
            try:
                answer = await self.primary.invoke(
                    messages,
                    model_id,
                    use_thinking,
                    options.cancel_token,
                    options.on_token,
                    options.on_reasoning_token,
                )
            except (RequestCancelledError, RateLimitedError):
                # Caller asked to stop, or this client is throttled everywhere.
                raise
            except Exception as e:
                last_error = e
                self._count_candidate(model_id, "failed")
                logger.warning(f"✗ {model_id}: {e}", extra={"candidate": model_id})
                continue

            self._count_candidate(model_id, "success")
            logger.info(f"✓ {model_id}", extra={"candidate": model_id})
            return model_id, answer, use_thinking

        logger.warning(
            f"{self.primary.name} exhausted, falling back to {self.secondary.name}"
        )
        if self.metrics:
            self.metrics.record_failover(self.secondary.name)

        for model in self.secondary.models:
            model_used = f"{self.secondary.name}:{model}"
            try:
                answer = await self.secondary.invoke(
                    messages,
                    model,
                    False,
                    options.cancel_token,
                    options.on_token,
                    options.on_reasoning_token,
                )
            except (RequestCancelledError, RateLimitedError):
                raise
            except Exception as e:
                last_error = e
                self._count_candidate(model_used, "failed")
                logger.warning(f"✗ {model_used}: {e}", extra={"candidate": model_used})
                continue

            self._count_candidate(model_used, "success")
            logger.info(f"✓ {model_used}", extra={"candidate": model_used})
            return model_used, answer, False

        raise ExhaustionError(last_error)

    def _count_candidate(self, model: str, status: str) -> None:
        if self.metrics:
            self.metrics.record_candidate(model, status)

    def _record(self, outcome: str, start_time: float, model: Optional[str] = None) -> None:
        if self.metrics:
            self.metrics.record_tutor_metrics(
                outcome=outcome,
                latency_ms=int((time.time() - start_time) * 1000),
                model_name=model,
            )
