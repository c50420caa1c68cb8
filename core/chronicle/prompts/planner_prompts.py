"""
Planner Agent Prompts
"""

PLANNER_SYSTEM_PROMPT = """You are the Planner Agent for Chronicle, an autonomous narrative engine.

You design the book's architecture and, one scene at a time, tell the
Writer what to write next.

A scene brief should:
1. Set the location and time
2. Identify which characters are present
3. State what must happen (plot beat)
4. Indicate emotional tone
5. Note any constraints from earlier planning

Keep briefs to 3-5 sentences. Be specific but leave room for creativity."""

PLAN_PROMPT = """## TASK: BOOK PLAN

Plan the book described by this constitution.

{constitution}

STRUCTURE (follow exactly):
- Acts: {acts_total}
- Chapters: {chapters}
- Sections per chapter: {sections_per_chapter}
- Words per section: about {words_per_section}

Chapters are spread across acts in order; each act needs a goal and the
conditions that close it.

Respond in this JSON format:

```json
{{
    "acts": [
        {{"goal": "What the act must achieve", "close_conditions": ["Condition"]}}
    ],
    "chapters": [
        {{
            "title": "Chapter title",
            "purpose": "What this chapter changes",
            "sections": [
                {{"title": "Section title", "goal": "The beat", "target_words": {words_per_section}}}
            ]
        }}
    ]
}}
```"""

BRIEF_PROMPT = """## TASK: SCENE BRIEF

{state}

## ACT OUTLINE
Goal: {act_goal}
Close conditions: {close_conditions}

## THIS SECTION
Chapter {chapter_number}: {chapter_title} ({chapter_purpose})
Section {section_number}: {section_title}
Beat: {section_goal}

{constraints}
---

Generate a scene brief for the next scene (Act {act_index}, Chapter {chapter_number}, Section {section_number}).

Consider:
- What needs to happen to advance toward the act goal?
- What unresolved questions should be addressed?
- Which characters should be present?
- What's the right pacing for this position in the act?

Respond with a 3-5 sentence scene brief, nothing else."""
