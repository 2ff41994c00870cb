"""Static few-shot examples, one pool per operation type"""

from __future__ import annotations

from functools import lru_cache

from models.operation import Example, OperationType

_PROPAGATE_REWRITE = [
    {
        "pre": "Mara packed her umbrella and walked to the ",
        "post": ". The rain drummed on the station roof while she waited for the 8:15.",
        "rewrite_from": "train station",
        "rewrite_to": "harbor",
        "target_pre": "Mara packed her umbrella and walked to the ",
        "target_post": ". The rain drummed on the ferry terminal roof while she waited for the 8:15 boat.",
    },
    {
        "pre": "The old dog lay by the fire. ",
        "post": " His tail thumped slowly whenever someone said his name.",
        "rewrite_from": "He was too tired to chase the cat anymore.",
        "rewrite_to": "The cat curled up against his belly.",
        "target_pre": "The old dog lay by the fire. ",
        "target_post": " His tail thumped slowly whenever someone said his name, and the cat purred in reply.",
    },
    {
        "pre": "It was the middle of ",
        "post": ", and the children were building a snowman in the yard.",
        "rewrite_from": "winter",
        "rewrite_to": "summer",
        "target_pre": "It was the middle of ",
        "target_post": ", and the children were building a sandcastle in the yard.",
    },
    {
        "pre": "Captain Ruiz shouted orders as ",
        "post": " climbed the rigging. The sails filled with wind.",
        "rewrite_from": "the sailors",
        "rewrite_to": "a lone cabin boy",
        "target_pre": "Captain Ruiz shouted orders as ",
        "target_post": " climbed the rigging alone. The sails filled with wind.",
    },
]

_REWRITE_SELECTION = [
    {
        "pre": "The wizard raised his staff and ",
        "post": " before vanishing into the mist.",
        "rewrite_from": "said some words",
        "rewrite_to": "chanted an ancient, rasping incantation",
        "instruction": "more dramatic",
    },
    {
        "pre": "After the meeting, Priya ",
        "post": " and went home early.",
        "rewrite_from": "was extremely unbelievably tired",
        "rewrite_to": "was exhausted",
        "instruction": "more concise",
    },
    {
        "pre": "The restaurant served ",
        "post": ", which the critics loved.",
        "rewrite_from": "food",
        "rewrite_to": "delicate plates of seared scallops and saffron rice",
        "instruction": "more descriptive",
    },
]

EXAMPLE_DATA: dict[OperationType, list[dict]] = {
    OperationType.PROPAGATE_REWRITE: _PROPAGATE_REWRITE,
    OperationType.REWRITE_SELECTION: _REWRITE_SELECTION,
}


@lru_cache(maxsize=None)
def get_examples(operation_type: OperationType) -> tuple[Example, ...]:
    """Validated example pool; built once per process"""
    return tuple(Example(**example) for example in EXAMPLE_DATA.get(operation_type, []))
