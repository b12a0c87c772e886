"""Pick the 4/3/3 easy/medium/hard question set from a generated question pool.

The assessment backend returns a questionnaire split by difficulty, but it does
not guarantee how many candidates each tier has, which bank ids they carry, or
where scenario-bearing questions sit. The selector:

* prefers a fixed whitelist of bank ids per tier and backfills from the front
  of the tier pool when the whitelist comes up short,
* moves the first scenario-bearing candidate of the medium and hard tiers to
  the front of its tier,
* numbers the final questions 1..N by position, so ids never collide even when
  a bank id repeats across tiers.

Under-supplied tiers are logged and the quiz simply gets fewer questions.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Tier:
    key: str
    label: str
    quota: int
    preferred_bank_ids: tuple[int, ...]
    promote_scenario: bool = False


TIERS: tuple[Tier, ...] = (
    Tier("easy", "Easy", 4, (1, 2, 3, 4, 5)),
    Tier("medium", "Medium", 3, (11, 12, 13), promote_scenario=True),
    Tier("hard", "Hard", 3, (17, 18), promote_scenario=True),
)
TARGET_TOTAL = sum(tier.quota for tier in TIERS)


def extract_questionnaire(quiz_data: Mapping[str, Any]) -> Dict[str, list]:
    """Return the tiered questionnaire from a generate-quiz envelope."""

    data = quiz_data.get("data") if isinstance(quiz_data, Mapping) else None
    answer_block = (data or {}).get("quiz_question_answer") if isinstance(data, Mapping) else None
    questionnaire = (answer_block or {}).get("questionaire") if isinstance(answer_block, Mapping) else None
    if not isinstance(questionnaire, Mapping):
        raise ValueError("Invalid quiz data structure")
    return {
        tier.key: list(questionnaire.get(tier.key) or [])
        if isinstance(questionnaire.get(tier.key), list)
        else []
        for tier in TIERS
    }


def has_scenario(candidate: Mapping[str, Any]) -> bool:
    title = candidate.get("scenario_title") or candidate.get("scenarioTitle") or ""
    context = candidate.get("text_context") or candidate.get("textContext") or ""
    return bool(str(title).strip() or str(context).strip())


def with_code_snippet(candidate: Mapping[str, Any]) -> str:
    """Return the prompt text, appending the code snippet as a fenced block if needed."""

    base = candidate.get("formatted_question") or candidate.get("question") or ""
    snippet = str(candidate.get("code_snippet") or "").strip()
    if not snippet:
        return base
    snippet = snippet.replace("\r\n", "\n")
    if "```" in base:
        # Already carries a fenced block (ours or the bank's own formatting).
        return base
    return f"{base}\n\n```js\n{snippet}\n```".strip()


def _tier_candidates(tier: Tier, pool: List[Mapping[str, Any]]) -> List[Mapping[str, Any]]:
    preferred = [q for q in pool if q.get("q_id") in tier.preferred_bank_ids]
    if len(preferred) >= tier.quota:
        return preferred
    logger.warning(
        "Only %s %s questions match preferred bank ids %s; backfilling from pool of %s",
        len(preferred),
        tier.key,
        list(tier.preferred_bank_ids),
        len(pool),
    )
    chosen_ids = {id(q) for q in preferred}
    for candidate in pool:
        if len(preferred) >= tier.quota:
            break
        if id(candidate) in chosen_ids:
            continue
        preferred.append(candidate)
        chosen_ids.add(id(candidate))
    return preferred


def _order_tier(tier: Tier, candidates: List[Mapping[str, Any]]) -> List[Mapping[str, Any]]:
    count = min(tier.quota, len(candidates))
    if not tier.promote_scenario:
        return candidates[:count]
    scenario_index = next((idx for idx, q in enumerate(candidates) if has_scenario(q)), None)
    if scenario_index is None:
        return candidates[:count]
    ordered = [candidates[scenario_index]]
    for idx, candidate in enumerate(candidates):
        if len(ordered) >= count:
            break
        if idx == scenario_index:
            continue
        ordered.append(candidate)
    return ordered


def select_questions(questionnaire: Mapping[str, Iterable[Mapping[str, Any]]]) -> List[dict]:
    """Return up to ten questions ordered easy, medium, hard with positional ids."""

    selected: List[dict] = []
    counts: Dict[str, int] = {}
    for tier in TIERS:
        pool = [q for q in (questionnaire.get(tier.key) or []) if isinstance(q, Mapping)]
        ordered = _order_tier(tier, _tier_candidates(tier, pool))
        counts[tier.key] = len(ordered)
        if len(ordered) < tier.quota:
            logger.warning(
                "Tier %s under-supplied: %s of %s questions available",
                tier.key,
                len(ordered),
                tier.quota,
            )
        for candidate in ordered:
            position = len(selected) + 1
            entry = dict(candidate)
            entry["formatted_question"] = with_code_snippet(candidate)
            entry["question_type"] = tier.label
            entry["position_id"] = str(position)
            selected.append(entry)

    if len(selected) != TARGET_TOTAL:
        logger.warning(
            "Selected %s questions (target %s): %s",
            len(selected),
            TARGET_TOTAL,
            counts,
        )
    else:
        logger.info("Selected question distribution %s", counts)
    return selected


def distribution_summary(questions: Iterable[Mapping[str, Any]]) -> Dict[str, int]:
    summary = {tier.key: 0 for tier in TIERS}
    labels = {tier.label: tier.key for tier in TIERS}
    for question in questions:
        key = labels.get(question.get("question_type"))
        if key:
            summary[key] += 1
    return summary
