"""
Prompt templates for the adventure engine

Built-in templates used when no override file exists in ``prompts_dir``.
``{{NAME}}`` placeholders are replaced with session parameters.
"""

# Story context shared by most phases
HISTORY_PROMPT = """# Story so far

## Backstory
{{BACKSTORY}}

## Novel instructions
{{NOVEL_INSTRUCTIONS}}

## Archived story summary
{{STORY_ARCHIVE}}

## Plot plan
{{PLOT_PLAN}}

## What we know about the player
{{USER_PROFILE}}

## Recent turns
{{RECENT_TURNS}}
"""

# Memory fetch - decides which entities and memories the writer needs
MEMORY_FETCH_PROMPT = """You are the search agent of an interactive novel. Before the writer continues
the story, you decide which memories must be pulled into context.

Known entities (id → name, brief):
{{REFMAP}}

Entities already in context:
{{FETCHED_ENTITIES}}

The next turn is turn {{TURN_NUMBER}}. Read the last writer response and the
player input, then answer with a JSON object only:
{"entities": ["<entity id>", ...], "search": ["<short memory query>", ...]}

Rules:
- "entities" may only contain ids from this list: {{EXISTING_ENTITY_IDS}}
- "search" must contain at least one query
"""

# Retrieval results handed to the writer
MEMORY_FETCH_RESULT_PROMPT = """# Retrieved memory

## Entities
{{FETCHED_ENTITIES}}

## Related passages from earlier turns
{{SEARCHED_RESULTS}}
"""

# Narrative generation
NARRATIVE_PROMPT = """You are the writer of an interactive novel. Continue the story from the
player's input.

Author style:
{{AUTHOR_STYLE}}

{{NARRATIVE_INSTRUCTIONS}}

Answer in exactly this format, each section exactly once:
<response>
<scene>where and when the turn happens, who is present</scene>
<narrative>the story text of this turn</narrative>
<notes>facts to remember that the reader did not see</notes>
<suggestedActions>a few short options for the player, one per line</suggestedActions>
</response>

You can call the search_memory and get_entity tools when you need details
that are not in context.
"""

# Memory update - keeps the entity graph and image prompts current
MEMORY_UPDATE_PROMPT = """You are the assistant of an interactive novel. Read the latest turn and keep the
memory of the story up to date.

Existing entity ids: {{EXISTING_ENTITY_IDS}}

Entities in context:
{{FETCHED_ENTITIES}}

Image instructions:
{{IMAGE_INSTRUCTIONS}}

Previous background prompt: {{PREVIOUS_BACKGROUND_PROMPT}}
Previous player portrait prompt: {{PREVIOUS_PLAYER_PROMPT}}

Answer with a JSON object only:
{
  "feedback": "short critique of the turn",
  "newEntities": {"<new id>": {"type": "...", "name": "...", "brief": "...", "info": "..."}},
  "updates": {"<existing id>": {"state": "...", "info": "new facts only"}},
  "backgroundPrompt": "image prompt for the current location",
  "illustrationType": "character or item",
  "illustrationId": "<entity id shown in the illustration>",
  "illustrationPrompt": "image prompt for the illustration",
  "playerPortraitPrompt": "image prompt for the player character"
}

Rules:
- "newEntities" must not reuse existing ids
- "updates" may only reference existing ids
- "info" and "secret" in updates hold new facts only, they are appended
"""

# Summary of older turns
SUMMARY_PROMPT = """You are the archivist of an interactive novel. Summarize these turns so they can
leave the prompt:
{{TURNS_TO_SUMMARIZE}}

Answer with a JSON object only:
{"summary": "...", "analysis": "...", "plotPlan": "...", "userProfile": "..."}

"plotPlan" replaces the current plot plan and "userProfile" the current
player profile.
"""

# Optional critique of the written turn
CRITIC_PROMPT = """You are the critic of an interactive novel. Review the last writer response for
consistency, pacing and style.

Answer with a short feedback inside <response></response>.
"""

BUILT_IN_PROMPTS = {
    "history": HISTORY_PROMPT,
    "memory-fetch": MEMORY_FETCH_PROMPT,
    "memory-fetch-result": MEMORY_FETCH_RESULT_PROMPT,
    "narrative": NARRATIVE_PROMPT,
    "memory-update": MEMORY_UPDATE_PROMPT,
    "summary": SUMMARY_PROMPT,
    "critic": CRITIC_PROMPT,
}
