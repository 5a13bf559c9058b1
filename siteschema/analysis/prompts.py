"""Prompt templates for AI validation of detected objects."""

import json
from typing import Any, Sequence

VALIDATE_INSTANCES_PROMPT = """\
You are reviewing candidate instances of a reusable content object detected \
while crawling a website. The object category is "{category}".

Each instance was extracted from one page and is listed with its index, the \
page it came from, how it was extracted (source) and its data.

Decide which instances are genuine examples of a "{category}" and which are \
outliers (navigation labels, boilerplate, extraction noise, or values that \
belong to a different category).

Respond with:
- "valid_indices": indices of the genuine instances
- "outlier_indices": indices of the outliers
- "confidence": your confidence in this judgement, between 0 and 1
- "reasoning": one or two sentences explaining the decision

Instances:
{instances}
"""


def format_validation_prompt(category: str, instances: Sequence[dict[str, Any]]) -> str:
    lines = [
        f"[{index}] page={item['page_url']} source={item['source']} "
        f"data={json.dumps(item['data'], ensure_ascii=False, default=str)[:500]}"
        for index, item in enumerate(instances)
    ]
    return VALIDATE_INSTANCES_PROMPT.format(category=category, instances="\n".join(lines))
