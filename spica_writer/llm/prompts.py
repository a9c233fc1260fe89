"""
Prompt templates for scene timeline and event description requests.
"""

import re
from typing import Dict, Optional, Tuple

PLACEHOLDER = re.compile(r"\{(\w+)\}")


class StoryPrompts:
    """
    Repository of system prompts, user prompt templates and response
    instructions, grouped per prompt type.
    """

    SCENE_TIMELINE_SYSTEM = " ".join([
        "You are a genius planner; world-class memory and empathy.",
        "Be CONSISTENT with all given information; not compulsory to use all.",
        "Use names not pronouns.",
    ])

    EVENT_DESCRIPTION_SYSTEM = " ".join([
        "You are a hyperphantasic visualiser.",
        "Be CONSISTENT with ALL given information, especially DIALOGUE.",
        "Extrapolate from ALL non-literal information, do not blindly repeat it.",
        "Do not add UNMENTIONED elements or characteristics.",
        "Use names not pronouns.",
    ])

    SCENE_TIMELINE_TEMPLATE = "{context}\n### USER REQUEST\n{user_input}\n\n{response_instructions}"

    EVENT_DESCRIPTION_TEMPLATE = (
        "{context}\n### TARGET EVENT\n{target_event}\n"
        "### USER REQUEST\n{user_input}\n\n{response_instructions}"
    )

    SCENE_TIMELINE_INSTRUCTIONS = " ".join([
        "You need not cover the whole SCENE PLAN in this message.",
        "Now, plan strictly for the USER REQUEST,",
        "consistent with RECENT EVENTS but not referencing them.",
        "One simple sentence per line, no dialogue or descriptions; just events.",
        "At the end, give a STANDALONE summary that explains who does what.",
        "then give a STANDALONE sentence that explains the Atmosphere: surroundings and scene significance.",
        "Enclose both in pipes: |TheSummary|TheAtmosphere|",
    ])

    EVENT_DESCRIPTION_INSTRUCTIONS = " ".join([
        "USER REQUEST is king. Aim to make user vividly imagine TARGET EVENT.",
        "Write in present tense only. Describe the snapshot bluntly and objectively.",
        "Prioritise body language, physical and sensory details.",
        "Limit 200 words.",
    ])

    PROMPT_CONFIGS: Dict[str, Dict[str, str]] = {
        'scene_timeline': {
            'system': SCENE_TIMELINE_SYSTEM,
            'template': SCENE_TIMELINE_TEMPLATE,
            'instructions': SCENE_TIMELINE_INSTRUCTIONS,
        },
        'event_description': {
            'system': EVENT_DESCRIPTION_SYSTEM,
            'template': EVENT_DESCRIPTION_TEMPLATE,
            'instructions': EVENT_DESCRIPTION_INSTRUCTIONS,
        },
    }

    @classmethod
    def get_config(cls, prompt_type: str) -> Dict[str, str]:
        """
        Get the system prompt, template and instructions for a prompt type.

        Args:
            prompt_type: 'scene_timeline' or 'event_description'

        Returns:
            Dictionary with 'system', 'template' and 'instructions'

        Raises:
            ValueError: Unknown prompt type
        """
        config = cls.PROMPT_CONFIGS.get(prompt_type.lower())
        if config is None:
            raise ValueError(f"Unknown prompt type: {prompt_type}")
        return config

    @classmethod
    def assemble_prompt(cls, prompt_type: str, user_input: str, context: str,
                        target_event: Optional[str] = None) -> Tuple[str, str]:
        """
        Build the (system_prompt, user_prompt) pair for a request.

        Placeholders are filled in a single pass, so braces inside the
        substituted text are never expanded.

        Args:
            prompt_type: 'scene_timeline' or 'event_description'
            user_input: What the author asked for
            context: Rendered project context (see context_builder.build_context)
            target_event: Event text for event_description prompts

        Returns:
            Tuple of system prompt and user prompt
        """
        config = cls.get_config(prompt_type)

        values = {
            "context": context,
            "user_input": user_input,
            "target_event": target_event or "",
            "response_instructions": config["instructions"],
        }
        user_prompt = PLACEHOLDER.sub(lambda m: values.get(m.group(1), m.group(0)), config["template"])

        return config['system'], user_prompt
