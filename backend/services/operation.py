"""
Operation - State machine for one user-triggered edit

An operation runs as a single asyncio task. Each suspension point is a Step
owning exactly one future: the controls step waits for user input, the loading
step for the model gateway, the choice step for the user's pick. Callers drive
the operation from outside with submit_controls / highlight / commit / cancel
and use wait_settled() to observe the state after each move.
"""

from __future__ import annotations

import asyncio
import logging
import random
import uuid
from dataclasses import dataclass
from typing import Any, Callable

from models.diff import Run, RunKind
from models.generation import Candidate, ModelParams
from models.operation import (
    OperationContext,
    OperationControls,
    OperationSite,
    OperationState,
    OperationTrigger,
    OperationType,
    TextInputControl,
)

from .diff_generator import DiffGenerator
from .llm_service import GatewayError, LLMService, retry_with_backoff
from .prompt_builder import PromptBuilder
from .text_editor import TextEditorService

logger = logging.getLogger(__name__)


class OperationUnavailableError(Exception):
    """Operation cannot run at the current cursor/selection"""


class OperationStateError(Exception):
    """Action is not valid in the operation's current state"""


class OperationCancelled(Exception):
    """Raised inside the operation task when the user dismisses it"""


# ========== Operation kinds ==========


@dataclass(frozen=True)
class OperationKind:
    """Everything that differs between operation types"""

    type: OperationType
    label: str
    description: str
    loading_message: str
    sites: frozenset
    make_controls: Callable[[], OperationControls]
    rewrites_document: bool  # candidates are the whole document rather than the selection

    def is_available(self, site: OperationSite) -> bool:
        return site in self.sites

    def original_choice(self, context: OperationContext) -> str:
        return context.all_text if self.rewrites_document else context.selected_text

    def expand_choice(self, context: OperationContext, text: str) -> str:
        """Full document text once the candidate is applied"""
        return text if self.rewrites_document else context.pre + text + context.post


def _propagate_rewrite_controls() -> OperationControls:
    return OperationControls(
        fields={
            "rewriteTo": TextInputControl(
                prefix="rewrite selection to",
                description="New text to replace the selection",
            )
        }
    )


def _rewrite_selection_controls() -> OperationControls:
    return OperationControls(
        fields={
            "howToRewrite": TextInputControl(
                prefix="rewrite selection to be",
                description="How to rewrite the selection",
            )
        }
    )


OPERATION_KINDS: dict[OperationType, OperationKind] = {
    OperationType.PROPAGATE_REWRITE: OperationKind(
        type=OperationType.PROPAGATE_REWRITE,
        label="adapt story",
        description="Adapt the story to include the rewritten section.",
        loading_message="Rewriting story...",
        sites=frozenset({OperationSite.SELECTION}),
        make_controls=_propagate_rewrite_controls,
        rewrites_document=True,
    ),
    OperationType.REWRITE_SELECTION: OperationKind(
        type=OperationType.REWRITE_SELECTION,
        label="rewrite selection",
        description="Rewrite the selected text.",
        loading_message="Rewriting selection...",
        sites=frozenset({OperationSite.SELECTION}),
        make_controls=_rewrite_selection_controls,
        rewrites_document=False,
    ),
}


def is_available(operation_type: OperationType, site: OperationSite) -> bool:
    return OPERATION_KINDS[operation_type].is_available(site)


def available_operations(site: OperationSite) -> list[OperationType]:
    return [kind.type for kind in OPERATION_KINDS.values() if kind.is_available(site)]


# ========== Steps ==========


class Step:
    """A suspension point owning a single pending completion signal"""

    name = "step"

    def __init__(self):
        self._future: asyncio.Future = asyncio.get_running_loop().create_future()

    @property
    def done(self) -> bool:
        return self._future.done()

    def resolve(self, value: Any = None) -> None:
        if not self._future.done():
            self._future.set_result(value)

    def fail(self, error: BaseException) -> None:
        if not self._future.done():
            self._future.set_exception(error)

    def cancel(self) -> None:
        self.fail(OperationCancelled())

    async def get_result(self) -> Any:
        return await self._future


class ControlsStep(Step):
    name = "controls"

    def __init__(self, controls: OperationControls, message: str):
        super().__init__()
        self.controls = controls
        self.message = message


class LoadingStep(Step):
    """Waits on a background task; a cancelled step abandons the task's result"""

    name = "loading"

    def __init__(self, message: str):
        super().__init__()
        self.message = message

    def track(self, task: asyncio.Task) -> None:
        def on_done(finished: asyncio.Task):
            if self.done:
                if not finished.cancelled() and finished.exception() is not None:
                    logger.info("Discarding failed generation of a cancelled operation")
                return
            if finished.cancelled():
                self.fail(OperationCancelled())
            elif finished.exception() is not None:
                self.fail(finished.exception())
            else:
                self.resolve(finished.result())

        task.add_done_callback(on_done)


class ChoiceStep(Step):
    name = "choice"

    def __init__(self, choices: list[Candidate]):
        super().__init__()
        self.choices = choices


# ========== Operation ==========


class Operation:
    """One edit workflow: controls -> generation -> choices -> commit/cancel"""

    def __init__(
        self,
        operation_type: OperationType,
        text_editor: TextEditorService,
        llm_service: LLMService,
        trigger: OperationTrigger = OperationTrigger.BUTTON,
        controls: OperationControls | None = None,
        prefilled: dict[str, str] | None = None,
        params: ModelParams | None = None,
        timeout_seconds: float | None = None,
        max_retries: int = 0,
        rng: random.Random | None = None,
    ):
        self.id = str(uuid.uuid4())
        self.kind = OPERATION_KINDS[operation_type]
        site = text_editor.get_operation_site()
        if not self.kind.is_available(site):
            raise OperationUnavailableError(f"{operation_type.value} is not available at {site.value}")
        self.text_editor = text_editor
        self.llm_service = llm_service
        self.trigger = trigger
        self.controls = controls or self.kind.make_controls()
        self.params = params
        self.timeout_seconds = timeout_seconds
        self.max_retries = max_retries
        self.prompt_builder = PromptBuilder(operation_type, rng)
        self.diff_generator = DiffGenerator()

        self.instantiated_with_controls = bool(prefilled)
        if prefilled:
            # Pre-filled values stay on this instance; the shared controls are untouched
            self.controls = self.controls.model_copy(deep=True)
            self.controls.update(prefilled)

        self.state = OperationState.CREATED
        self.current_step: Step | None = None
        self.context: OperationContext | None = None
        self.choices: list[Candidate] = []
        self.highlighted: int | None = None
        self.preview: list[Run] = []
        self.error: str | None = None

        self._snapshot = None
        self._settled = asyncio.Event()
        self._cancel_requested = False

    # ========== Derived values ==========

    @property
    def type(self) -> OperationType:
        return self.kind.type

    @property
    def is_active(self) -> bool:
        return not self.state.is_terminal

    @property
    def message(self) -> str:
        if self.state == OperationState.AWAITING_INPUT and isinstance(self.current_step, ControlsStep):
            return self.current_step.message
        if self.state == OperationState.RUNNING:
            return self.kind.loading_message
        if self.state == OperationState.FAILED:
            return f"Generation failed: {self.error}"
        return self.kind.description

    @property
    def original_text(self) -> str:
        return self.context.all_text if self.context else ""

    # ========== Lifecycle ==========

    async def wait_settled(self) -> OperationState:
        """Wait until the operation waits on the user or is finished"""
        await self._settled.wait()
        return self.state

    def _set_state(self, state: OperationState, settled: bool = False) -> None:
        logger.info("Operation %s (%s): %s -> %s", self.id[:8], self.type.value, self.state.value, state.value)
        self.state = state
        if settled:
            self._settled.set()

    def _require_state(self, *states: OperationState) -> None:
        if self.state not in states:
            raise OperationStateError(f"Operation is {self.state.value}")

    async def start(self) -> None:
        """Run the whole workflow; returns once the operation is terminal"""
        if self.state == OperationState.CANCELLED:
            return
        self._require_state(OperationState.CREATED)
        self._snapshot = self.text_editor.snapshot()
        try:
            await self.before_start()
            await self.run()
            step = ChoiceStep(self.choices)
            self.current_step = step
            self._set_state(OperationState.PRESENTING_CHOICES)
            self.highlight(0)
            self._settled.set()
            index = await self._wait(step)
            self.on_select_choice(self.choices[index])
            self._set_state(OperationState.COMMITTED, settled=True)
        except OperationCancelled:
            self.text_editor.restore(self._snapshot)
            self._set_state(OperationState.CANCELLED, settled=True)
        except (GatewayError, asyncio.TimeoutError) as e:
            self.error = str(e) or "request timed out"
            logger.error("Operation %s failed: %s", self.id[:8], self.error)
            self.text_editor.restore(self._snapshot)
            self._set_state(OperationState.FAILED, settled=True)
        except Exception as e:
            self.error = str(e) or type(e).__name__
            logger.exception("Operation %s failed unexpectedly", self.id[:8])
            self.text_editor.restore(self._snapshot)
            self._set_state(OperationState.FAILED, settled=True)
        finally:
            self.current_step = None
            self._settled.set()

    async def _wait(self, step: Step) -> Any:
        """Await a step; a cancel that arrived after the step resolved still wins"""
        result = await step.get_result()
        if self._cancel_requested:
            raise OperationCancelled()
        return result

    async def before_start(self) -> None:
        # Pre-filled controls need no input step
        if self.instantiated_with_controls:
            return

        # Only a key command moves into the controls step to collect input
        if self.trigger != OperationTrigger.KEY_COMMAND:
            return

        step = ControlsStep(self.controls, self.kind.description)
        self.current_step = step
        self._set_state(OperationState.AWAITING_INPUT, settled=True)
        await self._wait(step)

    async def run(self) -> None:
        self._set_state(OperationState.RUNNING)
        text_range = self.text_editor.get_range()
        if text_range is None:
            raise OperationCancelled()

        self.context = OperationContext.from_document(
            self.text_editor.get_plain_text(),
            *text_range,
            controls=self.controls.values(),
        )

        insert_position = self.text_editor.delete_range(text_range)
        self.text_editor.insert_selection_atom(self.context.selected_text, insert_position)

        prompt = self.prompt_builder.build_prompt(self.context)

        async def generate():
            call = self.llm_service.generate(prompt, self.params)
            if self.timeout_seconds:
                return await asyncio.wait_for(call, self.timeout_seconds)
            return await call

        step = LoadingStep(self.kind.loading_message)
        self.current_step = step
        step.track(asyncio.ensure_future(retry_with_backoff(generate, self.max_retries)))
        results = await self._wait(step)

        # Keep the original text as the first option
        original_choice = Candidate(text=self.kind.original_choice(self.context))
        self.choices = [original_choice, *(r for r in results if r.text != original_choice.text)]

    # ========== Choices ==========

    def diff_choice(self, choice: Candidate) -> list[Run]:
        new_text = self.kind.expand_choice(self.context, choice.text)
        return self.diff_generator.diff_text(self.original_text, new_text)

    def on_pending_choice(self, choice: Candidate) -> None:
        self.preview = self.diff_choice(choice)

        position = self.text_editor.delete_document()
        for run in self.preview:
            if run.kind == RunKind.INSERTED:
                position = self.text_editor.insert_addition_atom(run.text, position)
            elif run.kind == RunKind.DELETED:
                position = self.text_editor.insert_deletion_atom(run.text, position)
            else:
                position = self.text_editor.insert_generated_text(run.text, position)

    def on_select_choice(self, choice: Candidate) -> None:
        start_position = self.text_editor.delete_document()
        self.text_editor.insert_generated_text(self.kind.expand_choice(self.context, choice.text), start_position)
        self.preview = []

    def _check_index(self, index: int) -> None:
        if not 0 <= index < len(self.choices):
            raise IndexError(f"Choice {index} out of range (0-{len(self.choices) - 1})")

    def highlight(self, index: int) -> None:
        """Preview choice index in place of the original text"""
        self._require_state(OperationState.PRESENTING_CHOICES)
        self._check_index(index)
        self.highlighted = index
        self.on_pending_choice(self.choices[index])

    # ========== User actions ==========

    def _require_pending_step(self) -> None:
        if self.current_step is None or self.current_step.done:
            raise OperationStateError("Operation is already handling an action")

    def submit_controls(self, values: dict[str, str]) -> None:
        self._require_state(OperationState.AWAITING_INPUT)
        self._require_pending_step()
        self.controls.update(values)
        self._settled.clear()
        self.current_step.resolve(self.controls.values())

    def commit(self, index: int | None = None) -> None:
        self._require_state(OperationState.PRESENTING_CHOICES)
        self._require_pending_step()
        index = self.highlighted if index is None else index
        self._check_index(index)
        self._settled.clear()
        self.current_step.resolve(index)

    def cancel(self) -> None:
        if self.state.is_terminal:
            return
        if self.state == OperationState.CREATED:
            self._set_state(OperationState.CANCELLED, settled=True)
            return
        if self.current_step is None:
            # No task is waiting to observe the cancel
            if self._snapshot is not None:
                self.text_editor.restore(self._snapshot)
            self._set_state(OperationState.CANCELLED, settled=True)
            return
        self._cancel_requested = True
        self._settled.clear()
        self.current_step.cancel()
