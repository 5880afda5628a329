"""
reflection.py — Quality gate.

Scores the current draft and decides, via route_after_reflect, whether the
workflow ends or loops back to orchestrate with feedback.

Policy per visit:
  - no draft yet            → no-op
  - iteration_count + 1     → always recorded
  - above HARD_ITERATION_CAP → forced pass, no model call
  - bypass_reflection       → pass, no model call
  - otherwise               → structured verdict from the quality-check model
"""

from __future__ import annotations

import logging
from typing import Optional

from langchain_core.exceptions import OutputParserException
from langchain_core.runnables import RunnableConfig
from pydantic import ValidationError

from clinsynapse.configuration import AgentConfiguration
from clinsynapse.llm import chat_model
from clinsynapse.prompts import (
    GENERIC_REFLECTION_FEEDBACK,
    REFLECTION_PROMPT,
    REFLECTION_USER_TEMPLATE,
)
from clinsynapse.schemas import QualityVerdict, WorkflowState

logger = logging.getLogger(__name__)

# Absolute ceiling on quality-gate passes, independent of configuration.
HARD_ITERATION_CAP = 3


async def reflection_agent(state: WorkflowState, config: RunnableConfig) -> dict:
    draft = state.get("final_response", "")
    if not draft:
        logger.info("[reflect] no draft to review")
        return {}

    cfg = AgentConfiguration.from_runnable_config(config)
    iteration_count = state.get("iteration_count", 0) + 1

    if iteration_count > HARD_ITERATION_CAP:
        logger.warning("[reflect] iteration %d exceeds hard cap, forcing pass", iteration_count)
        return _verdict(iteration_count, True, None)

    if cfg.bypass_reflection:
        logger.info("[reflect] bypassed by configuration")
        return _verdict(iteration_count, True, None)

    llm = chat_model(cfg, temperature=0.0, stream_tokens=False).with_structured_output(QualityVerdict)
    try:
        verdict: Optional[QualityVerdict] = await llm.ainvoke([
            {"role": "system", "content": REFLECTION_PROMPT},
            {
                "role": "user",
                "content": REFLECTION_USER_TEMPLATE.format(
                    user_query=state.get("user_query", ""),
                    final_response=draft,
                ),
            },
        ])
    except (OutputParserException, ValidationError) as exc:
        logger.warning("[reflect] unparseable verdict: %s", exc)
        verdict = None

    if verdict is None:
        return _verdict(iteration_count, False, GENERIC_REFLECTION_FEEDBACK)

    feedback = None if verdict.quality_passed else (verdict.feedback or GENERIC_REFLECTION_FEEDBACK)
    logger.info("[reflect] iteration %d passed=%s", iteration_count, verdict.quality_passed)
    return _verdict(iteration_count, verdict.quality_passed, feedback)


def _verdict(iteration_count: int, passed: bool, feedback: Optional[str]) -> dict:
    return {
        "iteration_count": iteration_count,
        "quality_passed": passed,
        "reflection_feedback": feedback,
    }
