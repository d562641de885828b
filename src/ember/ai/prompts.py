"""Fixed instructions and prompt templating."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Mapping

_PLACEHOLDER_RE = re.compile(r"\{\{\s*([A-Za-z0-9_]+)\s*\}\}|\{([A-Za-z0-9_]+)\}")

SUGGESTIONS_INSTRUCTION = (
    "Generate up to {max_suggestions} suggested replies the user might send next in this conversation. "
    "Keep each one under 8 words, natural and conversational, and relevant to the most recent messages. "
    "Respond with a JSON array of strings and nothing else."
)

TITLE_INSTRUCTION = """\
Based on the conversation so far, determine if there is a clear topic of conversation and, if so, \
return a concise title for it.

To determine if there is a clear topic:
1. Read through the entire conversation.
2. Look for recurring themes or subjects that dominate the discussion.
3. Ignore greetings, small talk, or unrelated tangents.

If you identify a clear topic, keep the title under 4 words and make it descriptive.
Do not return a title if there is no clear topic, the conversation is only greetings or small talk, \
or the discussion is too varied to summarize.

Output the title within <title> tags. If no title should be returned, output an empty <title></title> tag."""

IMAGE_RESPONSE_TEXT = "A generated image using the prompt:\n{prompt}"

WEB_SEARCH_RESULTS_INSTRUCTION = """\
Select relevant website results, browse their pages and summarize them. Use the <search_results> below to \
select at least 3 results to browse. Choose the most relevant and diverse sources for the search query, "{{QUERY}}".

Consider relevance to the query, credibility of the source, diversity of perspectives and recency.
Keep each summary to 3-5 sentences in your own words.

<search_results>
{{RESULTS}}
</search_results>"""

IMAGE_SEARCH_RESULTS_INSTRUCTION = (
    "Search complete. Showing {count} images. Do not repeat any of the image URLs. Let the user know you found "
    "{count} images, each one will take the user to the website it originates from."
)

SUMMARIZE_PAGE_INSTRUCTION = """\
{{INSTRUCTIONS}}

<webpage>
{{CONTENT}}
</webpage>"""


def render_template(template: str, context: Mapping[str, str] | None = None) -> str:
    """Substitute ``{{NAME}}`` / ``{NAME}`` placeholders, case-insensitively.

    Unknown placeholders are left untouched.
    """

    if not template or not context:
        return template
    lookup = {str(key).lower(): str(value) for key, value in context.items()}

    def _substitute(match: re.Match[str]) -> str:
        name = (match.group(1) or match.group(2) or "").lower()
        if name in lookup:
            return lookup[name]
        return match.group(0)

    return _PLACEHOLDER_RE.sub(_substitute, template)


def default_context(now: datetime | None = None) -> dict[str, str]:
    moment = now or datetime.now(timezone.utc)
    return {"DATETIME": moment.strftime("%Y-%m-%d %H:%M:%S %Z").strip()}


def suggestions_instruction(max_suggestions: int = 3) -> str:
    return SUGGESTIONS_INSTRUCTION.format(max_suggestions=max(1, max_suggestions))


__all__ = [
    "IMAGE_RESPONSE_TEXT",
    "IMAGE_SEARCH_RESULTS_INSTRUCTION",
    "SUGGESTIONS_INSTRUCTION",
    "SUMMARIZE_PAGE_INSTRUCTION",
    "TITLE_INSTRUCTION",
    "WEB_SEARCH_RESULTS_INSTRUCTION",
    "default_context",
    "render_template",
    "suggestions_instruction",
]
