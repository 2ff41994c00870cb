"""
Tests for operation.py and operation_manager.py - the edit state machine.

Each test drives an operation the way the API does: start it as a task, then
act on it and wait for it to settle.
"""

import asyncio

import pytest
from unittest.mock import AsyncMock, patch

from models.diff import Run, RunKind
from models.document import Atom
from models.generation import Candidate, ModelParams
from models.operation import OperationState, OperationTrigger, OperationType
from services.llm_service import GatewayError, LLMService
from services.operation import (
    ChoiceStep,
    ControlsStep,
    Operation,
    OperationStateError,
    OperationUnavailableError,
    available_operations,
)
from services.operation_manager import DocumentSession
from services.text_editor import ADDITION, DELETION, GENERATED, TEXT, TextEditorService


@pytest.fixture
def editor(story):
    editor = TextEditorService(story)
    editor.set_range(4, 7)
    return editor


async def start(operation):
    task = asyncio.create_task(operation.start())
    await operation.wait_settled()
    return task


async def until(predicate):
    for _ in range(100):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition never became true")


def texts(choices):
    return [choice.text for choice in choices]


# ============================================================================
# Availability
# ============================================================================

def test_operations_need_a_selection(story, make_gateway):
    editor = TextEditorService(story)
    with pytest.raises(OperationUnavailableError):
        Operation(OperationType.PROPAGATE_REWRITE, editor, make_gateway())

    editor.set_range(4)
    with pytest.raises(OperationUnavailableError):
        Operation(OperationType.PROPAGATE_REWRITE, editor, make_gateway())


def test_available_operations_per_site(editor):
    assert available_operations(editor.get_operation_site()) == [
        OperationType.PROPAGATE_REWRITE,
        OperationType.REWRITE_SELECTION,
    ]
    editor.set_range(None)
    assert available_operations(editor.get_operation_site()) == []


# ============================================================================
# Propagate rewrite
# ============================================================================

@pytest.mark.asyncio
async def test_propagate_rewrite_commit(editor, story, make_gateway):
    gateway = make_gateway("The dog sat on the rug.")
    operation = Operation(
        OperationType.PROPAGATE_REWRITE, editor, gateway, prefilled={"rewriteTo": "dog"}
    )
    task = await start(operation)

    assert operation.state == OperationState.PRESENTING_CHOICES
    assert isinstance(operation.current_step, ChoiceStep)
    assert texts(operation.choices) == [story, "The dog sat on the rug."]
    assert operation.highlighted == 0
    assert operation.context.selected_text == "cat"

    prompt, params = gateway.generate.call_args.args
    assert prompt.endswith("{cat}\nThe phrase in the blank has been rewritten to:\n{dog}\n"
                           "The story adapted to fit the rewrite is: ")

    operation.highlight(1)
    assert operation.preview == [
        Run(kind=RunKind.KEPT, text="The "),
        Run(kind=RunKind.DELETED, text="cat"),
        Run(kind=RunKind.INSERTED, text="dog"),
        Run(kind=RunKind.KEPT, text=" sat on the "),
        Run(kind=RunKind.DELETED, text="mat"),
        Run(kind=RunKind.INSERTED, text="rug"),
        Run(kind=RunKind.KEPT, text="."),
    ]
    assert [atom.kind for atom in editor.get_atoms()] == [
        GENERATED, DELETION, ADDITION, GENERATED, DELETION, ADDITION, GENERATED,
    ]
    assert editor.get_plain_text() == "The dog sat on the rug."

    operation.commit()
    assert await operation.wait_settled() == OperationState.COMMITTED
    await task

    assert editor.get_atoms() == [Atom(kind=GENERATED, text="The dog sat on the rug.")]
    assert operation.preview == []
    assert operation.current_step is None


@pytest.mark.asyncio
async def test_highlighting_original_restores_text(editor, story, make_gateway):
    operation = Operation(
        OperationType.PROPAGATE_REWRITE, editor, make_gateway("The dog sat."), prefilled={"rewriteTo": "dog"}
    )
    task = await start(operation)

    operation.highlight(1)
    operation.highlight(0)
    assert operation.preview == [Run(kind=RunKind.KEPT, text=story)]
    assert editor.get_plain_text() == story

    operation.cancel()
    await operation.wait_settled()
    await task


@pytest.mark.asyncio
async def test_no_candidates_leaves_only_original(editor, story, make_gateway):
    operation = Operation(OperationType.PROPAGATE_REWRITE, editor, make_gateway(), prefilled={"rewriteTo": "dog"})
    task = await start(operation)

    assert texts(operation.choices) == [story]
    operation.commit(0)
    assert await operation.wait_settled() == OperationState.COMMITTED
    await task
    assert editor.get_plain_text() == story


@pytest.mark.asyncio
async def test_candidate_equal_to_original_is_dropped(editor, story, make_gateway):
    operation = Operation(
        OperationType.PROPAGATE_REWRITE, editor, make_gateway(story, "Another story."), prefilled={"rewriteTo": "dog"}
    )
    task = await start(operation)

    assert texts(operation.choices) == [story, "Another story."]
    operation.cancel()
    await operation.wait_settled()
    await task


@pytest.mark.asyncio
async def test_invalid_choice_index(editor, make_gateway):
    operation = Operation(OperationType.PROPAGATE_REWRITE, editor, make_gateway("x"), prefilled={"rewriteTo": "dog"})
    task = await start(operation)

    with pytest.raises(IndexError):
        operation.highlight(5)
    with pytest.raises(IndexError):
        operation.commit(-1)
    assert operation.state == OperationState.PRESENTING_CHOICES

    operation.cancel()
    await operation.wait_settled()
    await task


# ============================================================================
# Rewrite selection
# ============================================================================

@pytest.mark.asyncio
async def test_rewrite_selection_commit(editor, make_gateway):
    gateway = make_gateway("dog")
    operation = Operation(
        OperationType.REWRITE_SELECTION, editor, gateway, prefilled={"howToRewrite": "a different animal"}
    )
    task = await start(operation)

    assert texts(operation.choices) == ["cat", "dog"]
    prompt = gateway.generate.call_args.args[0]
    assert prompt.endswith("Rewrite it to be: a different animal\nThe rewritten phrase is: ")

    operation.highlight(1)
    assert operation.preview == [
        Run(kind=RunKind.KEPT, text="The "),
        Run(kind=RunKind.DELETED, text="cat"),
        Run(kind=RunKind.INSERTED, text="dog"),
        Run(kind=RunKind.KEPT, text=" sat on the mat."),
    ]

    operation.commit(1)
    assert await operation.wait_settled() == OperationState.COMMITTED
    await task
    assert editor.get_plain_text() == "The dog sat on the mat."


# ============================================================================
# Controls step
# ============================================================================

@pytest.mark.asyncio
async def test_key_command_collects_controls(editor, make_gateway):
    gateway = make_gateway("The dog sat on the mat.")
    operation = Operation(
        OperationType.PROPAGATE_REWRITE, editor, gateway, trigger=OperationTrigger.KEY_COMMAND
    )
    task = await start(operation)

    assert operation.state == OperationState.AWAITING_INPUT
    assert isinstance(operation.current_step, ControlsStep)
    assert operation.message == "Adapt the story to include the rewritten section."
    assert operation.controls.missing() == ["rewriteTo"]
    gateway.generate.assert_not_called()

    with pytest.raises(KeyError):
        operation.submit_controls({"unknown": "value"})
    with pytest.raises(OperationStateError):
        operation.commit(0)

    operation.submit_controls({"rewriteTo": "dog"})
    assert await operation.wait_settled() == OperationState.PRESENTING_CHOICES
    assert operation.context.controls == {"rewriteTo": "dog"}

    with pytest.raises(OperationStateError):
        operation.submit_controls({"rewriteTo": "bird"})

    operation.cancel()
    await operation.wait_settled()
    await task


@pytest.mark.asyncio
async def test_button_trigger_skips_controls(editor, make_gateway):
    gateway = make_gateway("x")
    operation = Operation(OperationType.PROPAGATE_REWRITE, editor, gateway)
    task = await start(operation)

    assert operation.state == OperationState.PRESENTING_CHOICES
    gateway.generate.assert_awaited_once()

    operation.cancel()
    await operation.wait_settled()
    await task


@pytest.mark.asyncio
async def test_prefilled_key_command_skips_controls(editor, make_gateway):
    operation = Operation(
        OperationType.PROPAGATE_REWRITE,
        editor,
        make_gateway("x"),
        trigger=OperationTrigger.KEY_COMMAND,
        prefilled={"rewriteTo": "dog"},
    )
    task = await start(operation)

    assert operation.state == OperationState.PRESENTING_CHOICES

    operation.cancel()
    await operation.wait_settled()
    await task


# ============================================================================
# Cancel
# ============================================================================

@pytest.mark.asyncio
async def test_cancel_while_awaiting_input(editor, story, make_gateway):
    gateway = make_gateway("x")
    operation = Operation(
        OperationType.PROPAGATE_REWRITE, editor, gateway, trigger=OperationTrigger.KEY_COMMAND
    )
    task = await start(operation)

    operation.cancel()
    assert await operation.wait_settled() == OperationState.CANCELLED
    await task

    gateway.generate.assert_not_called()
    assert editor.get_atoms() == [Atom(kind=TEXT, text=story)]
    assert editor.get_range() == (4, 7)


@pytest.mark.asyncio
async def test_cancel_while_presenting_restores_document(editor, story, make_gateway):
    operation = Operation(
        OperationType.PROPAGATE_REWRITE, editor, make_gateway("The dog sat on the rug."), prefilled={"rewriteTo": "dog"}
    )
    task = await start(operation)
    operation.highlight(1)

    operation.cancel()
    assert await operation.wait_settled() == OperationState.CANCELLED
    await task

    assert editor.get_atoms() == [Atom(kind=TEXT, text=story)]
    assert editor.get_range() == (4, 7)
    assert operation.current_step is None

    # Terminal operations ignore further cancels
    operation.cancel()
    assert operation.state == OperationState.CANCELLED


@pytest.mark.asyncio
async def test_cancel_while_running_discards_result(editor, story, make_gateway):
    gate = asyncio.Event()
    finished = []

    async def slow_generate(prompt, params):
        await gate.wait()
        finished.append(True)
        return [Candidate(text="late result")]

    gateway = make_gateway()
    gateway.generate = AsyncMock(side_effect=slow_generate)
    operation = Operation(OperationType.PROPAGATE_REWRITE, editor, gateway, prefilled={"rewriteTo": "dog"})
    task = asyncio.create_task(operation.start())

    await until(lambda: operation.state == OperationState.RUNNING)
    assert operation.message == "Rewriting story..."
    assert editor.get_plain_text() == story

    operation.cancel()
    assert await operation.wait_settled() == OperationState.CANCELLED
    await task

    gate.set()
    await until(lambda: finished)
    await asyncio.sleep(0)

    assert operation.state == OperationState.CANCELLED
    assert operation.choices == []
    assert editor.get_atoms() == [Atom(kind=TEXT, text=story)]


@pytest.mark.asyncio
async def test_cancel_before_start(make_gateway):
    editor = TextEditorService("Some text")
    editor.set_range(0, 4)
    gateway = make_gateway("x")
    operation = Operation(OperationType.PROPAGATE_REWRITE, editor, gateway)

    operation.cancel()
    assert operation.state == OperationState.CANCELLED
    await operation.start()
    gateway.generate.assert_not_called()


# ============================================================================
# Failures
# ============================================================================

@pytest.mark.asyncio
async def test_gateway_error_fails_operation(editor, story, make_gateway):
    gateway = make_gateway()
    gateway.generate = AsyncMock(side_effect=GatewayError("backend down"))
    operation = Operation(OperationType.PROPAGATE_REWRITE, editor, gateway, prefilled={"rewriteTo": "dog"})
    task = await start(operation)
    await task

    assert operation.state == OperationState.FAILED
    assert operation.error == "backend down"
    assert operation.message == "Generation failed: backend down"
    assert editor.get_atoms() == [Atom(kind=TEXT, text=story)]
    assert editor.get_range() == (4, 7)


@pytest.mark.asyncio
async def test_timeout_fails_operation(editor, story, make_gateway):
    async def hang(prompt, params):
        await asyncio.sleep(10)

    gateway = make_gateway()
    gateway.generate = AsyncMock(side_effect=hang)
    operation = Operation(
        OperationType.PROPAGATE_REWRITE,
        editor,
        gateway,
        prefilled={"rewriteTo": "dog"},
        timeout_seconds=0.01,
    )
    task = await start(operation)
    await task

    assert operation.state == OperationState.FAILED
    assert operation.error == "request timed out"
    assert editor.get_plain_text() == story


# ============================================================================
# Document session
# ============================================================================

@pytest.mark.asyncio
async def test_starting_an_operation_cancels_the_active_one(story, make_gateway):
    session = DocumentSession(story)
    session.text_editor.set_range(4, 7)

    first = await session.start_operation(
        OperationType.PROPAGATE_REWRITE, make_gateway("The dog sat on the rug."), prefilled={"rewriteTo": "dog"}
    )
    first.highlight(1)
    assert session.active_operation is first

    second = await session.start_operation(
        OperationType.REWRITE_SELECTION, make_gateway("dog"), prefilled={"howToRewrite": "a dog"}
    )

    assert first.state == OperationState.CANCELLED
    assert second.state == OperationState.PRESENTING_CHOICES
    assert session.active_operation is second
    assert second.context.all_text == story

    second.cancel()
    await second.wait_settled()
    assert session.active_operation is None
    await session.resolve_active()


@pytest.mark.asyncio
async def test_shared_controls_persist_between_operations(story, make_gateway):
    session = DocumentSession(story)
    session.text_editor.set_range(4, 7)

    operation = await session.start_operation(
        OperationType.PROPAGATE_REWRITE, make_gateway("x"), trigger=OperationTrigger.KEY_COMMAND
    )
    operation.submit_controls({"rewriteTo": "dog"})
    await operation.wait_settled()
    operation.cancel()
    await operation.wait_settled()
    assert session.controls[OperationType.PROPAGATE_REWRITE].values() == {"rewriteTo": "dog"}

    prefilled = await session.start_operation(
        OperationType.PROPAGATE_REWRITE, make_gateway("x"), prefilled={"rewriteTo": "bird"}
    )
    assert prefilled.context.controls == {"rewriteTo": "bird"}
    assert session.controls[OperationType.PROPAGATE_REWRITE].values() == {"rewriteTo": "dog"}

    prefilled.cancel()
    await prefilled.wait_settled()


@pytest.mark.asyncio
async def test_session_applies_generation_config(story, make_gateway):
    session = DocumentSession(story)
    session.text_editor.set_range(4, 7)
    gateway = make_gateway("x")
    config = {
        "generation": {"candidateCount": 2, "temperature": 0.5},
        "operation": {"shuffleSeed": 3, "timeoutSeconds": 30},
    }

    operation = await session.start_operation(
        OperationType.PROPAGATE_REWRITE, gateway, prefilled={"rewriteTo": "dog"}, config=config
    )

    params = gateway.generate.call_args.args[1]
    assert isinstance(params, ModelParams)
    assert (params.candidate_count, params.temperature, params.top_p) == (2, 0.5, None)
    assert operation.timeout_seconds == 30

    operation.cancel()
    await operation.wait_settled()


# ============================================================================
# Unexpected failures
# ============================================================================

@pytest.mark.asyncio
async def test_malformed_body_fails_and_restores(editor, story):
    service = LLMService({"provider": "openai", "openai": {"apiKey": "sk-test"}})
    operation = Operation(OperationType.PROPAGATE_REWRITE, editor, service, prefilled={"rewriteTo": "dog"})

    with patch.object(service, "_request_json", AsyncMock(return_value={"choices": ["oops"]})):
        task = await start(operation)
        await task

    assert operation.state == OperationState.FAILED
    assert "Malformed" in operation.error
    assert editor.get_atoms() == [Atom(kind=TEXT, text=story)]
    assert editor.get_range() == (4, 7)


@pytest.mark.asyncio
async def test_unexpected_error_fails_and_session_recovers(story, make_gateway):
    session = DocumentSession(story)
    session.text_editor.set_range(4, 7)
    broken = make_gateway()
    broken.generate = AsyncMock(side_effect=RuntimeError("adapter bug"))

    first = await session.start_operation(
        OperationType.PROPAGATE_REWRITE, broken, prefilled={"rewriteTo": "dog"}
    )
    assert first.state == OperationState.FAILED
    assert first.error == "adapter bug"
    assert session.active_operation is None
    assert session.text_editor.get_atoms() == [Atom(kind=TEXT, text=story)]

    second = await session.start_operation(
        OperationType.PROPAGATE_REWRITE, make_gateway("The dog sat on the rug."), prefilled={"rewriteTo": "dog"}
    )
    assert second.state == OperationState.PRESENTING_CHOICES

    second.cancel()
    await second.wait_settled()


# ============================================================================
# Actions racing the operation task
# ============================================================================

@pytest.mark.asyncio
async def test_cancel_after_commit_wins(editor, story, make_gateway):
    operation = Operation(
        OperationType.PROPAGATE_REWRITE, editor, make_gateway("The dog sat on the rug."), prefilled={"rewriteTo": "dog"}
    )
    task = await start(operation)

    operation.commit(1)
    operation.cancel()
    assert await operation.wait_settled() == OperationState.CANCELLED
    await task

    assert editor.get_atoms() == [Atom(kind=TEXT, text=story)]
    assert editor.get_range() == (4, 7)


@pytest.mark.asyncio
async def test_cancel_after_submit_controls_wins(editor, story, make_gateway):
    gateway = make_gateway("x")
    operation = Operation(
        OperationType.PROPAGATE_REWRITE, editor, gateway, trigger=OperationTrigger.KEY_COMMAND
    )
    task = await start(operation)

    operation.submit_controls({"rewriteTo": "dog"})
    operation.cancel()
    assert await operation.wait_settled() == OperationState.CANCELLED
    await task

    gateway.generate.assert_not_called()
    assert editor.get_atoms() == [Atom(kind=TEXT, text=story)]


@pytest.mark.asyncio
async def test_second_commit_is_rejected(editor, make_gateway):
    operation = Operation(
        OperationType.PROPAGATE_REWRITE, editor, make_gateway("The dog sat on the rug."), prefilled={"rewriteTo": "dog"}
    )
    task = await start(operation)

    operation.commit(1)
    with pytest.raises(OperationStateError):
        operation.commit(0)
    assert await operation.wait_settled() == OperationState.COMMITTED
    await task
    assert editor.get_plain_text() == "The dog sat on the rug."
