"""
Deterministic per-attempt question/option ordering
"""
import random
import secrets
from typing import Any, Dict, List, Optional


def new_shuffle_seed() -> int:
    """Random 31-bit seed, small enough for a plain INTEGER column"""
    return secrets.randbits(31)


def presented_order(
    snapshot: List[Dict[str, Any]],
    seed: Optional[int],
    shuffle_questions: bool,
    shuffle_options: bool
) -> List[Dict[str, Any]]:
    """
    Order the frozen snapshot for display.

    The same (snapshot, seed) always yields the same order, so a reloaded
    attempt shows questions exactly as before. Correctness keys are stripped.
    """
    rng = random.Random(seed or 0)

    questions = list(snapshot)
    if shuffle_questions:
        rng.shuffle(questions)

    presented = []
    for question in questions:
        options = [
            {"id": opt["id"], "text": opt.get("text", "")}
            for opt in question.get("options") or []
        ]
        if shuffle_options and question.get("type") != "true_false":
            rng.shuffle(options)

        presented.append({
            "id": question["id"],
            "type": question["type"],
            "text": question.get("text", ""),
            "marks": question.get("marks", 0),
            "options": options,
        })

    return presented
