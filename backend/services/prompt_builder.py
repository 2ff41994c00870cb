"""
Prompt Builder - Few-shot prompt assembly

The example pool is reshuffled on every build so the backend does not see the
same ordering twice. Examples and the live request go through the same
template.
"""

from __future__ import annotations

import random
from collections.abc import Sequence

from models.operation import Example, OperationContext, OperationType

from .examples import get_examples
from .result_parser import BLANK, D0, D1

PROMPT_PREAMBLE = "You are an expert writing assistant, and can expertly write and edit stories.\n\n"
STORY_PREFIX = "Story:"
EXAMPLE_SEPARATOR = "\n\n"


def wrap(text: str) -> str:
    return f"{D0}{text}{D1}"


def insert_blank(pre: str, post: str) -> str:
    return f"{pre}{BLANK}{post}"


def make_propagate_rewrite_prompt(example: Example) -> str:
    rewrite_from = f"The phrase in the blank was previously:\n{wrap(example.rewrite_from)}"
    rewrite_to = f"The phrase in the blank has been rewritten to:\n{wrap(example.rewrite_to)}"
    suffix = "The story adapted to fit the rewrite is: "
    story = wrap(insert_blank(example.pre, example.post))
    return f"{STORY_PREFIX}\n{story}\n{rewrite_from}\n{rewrite_to}\n{suffix}"


def make_propagate_rewrite_response(example: Example) -> str:
    target_pre = example.pre if example.target_pre is None else example.target_pre
    target_post = example.post if example.target_post is None else example.target_post
    return f"{target_pre}{example.rewrite_to}{target_post}"


def make_rewrite_selection_prompt(example: Example) -> str:
    story = wrap(insert_blank(example.pre, example.post))
    to_rewrite = f"The phrase in the blank is:\n{wrap(example.rewrite_from)}"
    instruction = f"Rewrite it to be: {example.instruction or ''}"
    suffix = "The rewritten phrase is: "
    return f"{STORY_PREFIX}\n{story}\n{to_rewrite}\n{instruction}\n{suffix}"


def make_rewrite_selection_response(example: Example) -> str:
    return example.rewrite_to


# (prompt template, expected output template) per operation type
TEMPLATES = {
    OperationType.PROPAGATE_REWRITE: (make_propagate_rewrite_prompt, make_propagate_rewrite_response),
    OperationType.REWRITE_SELECTION: (make_rewrite_selection_prompt, make_rewrite_selection_response),
}


def example_from_context(operation_type: OperationType, context: OperationContext) -> Example:
    """The live request expressed as an example without an answer"""
    if operation_type == OperationType.PROPAGATE_REWRITE:
        return Example(
            pre=context.pre,
            post=context.post,
            rewrite_from=context.selected_text,
            rewrite_to=context.controls.get("rewriteTo", ""),
        )
    return Example(
        pre=context.pre,
        post=context.post,
        rewrite_from=context.selected_text,
        rewrite_to="",
        instruction=context.controls.get("howToRewrite", ""),
    )


class PromptBuilder:
    """Build few-shot prompts for one operation type"""

    def __init__(self, operation_type: OperationType, rng: random.Random | None = None):
        self.operation_type = operation_type
        self.rng = rng or random.Random()
        self.make_prompt, self.make_response = TEMPLATES[operation_type]

    def shuffle(self, examples: Sequence[Example]) -> list[Example]:
        shuffled = list(examples)
        self.rng.shuffle(shuffled)
        return shuffled

    def format_example(self, example: Example) -> str:
        return f"{self.make_prompt(example)}\n{wrap(self.make_response(example))}"

    def build_context(self, examples: Sequence[Example] | None = None) -> str:
        """Preamble followed by every example once, in a fresh random order"""
        if examples is None:
            examples = get_examples(self.operation_type)
        blocks = [self.format_example(example) for example in self.shuffle(examples)]
        context = PROMPT_PREAMBLE
        for block in blocks:
            context += block + EXAMPLE_SEPARATOR
        return context

    def build_prompt(self, context: OperationContext, examples: Sequence[Example] | None = None) -> str:
        live = example_from_context(self.operation_type, context)
        return self.build_context(examples) + self.make_prompt(live)
