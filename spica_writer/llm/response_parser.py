"""
Response Parser
===============

Turns a free-text model reply into timeline events.

Each non-blank line becomes one event. A line carrying a quoted passage
(first double quote strictly before the last one) is split into narration
before the quotes and the dialogue between them; anything else is narration
only. Nested, multi-line or typographic quotes are not interpreted.
"""

import logging
import re
from typing import List, Optional, Tuple

from spica_writer.project.models import TimelineEvent

logger = logging.getLogger(__name__)

QUOTE = '"'

# |TheSummary|TheAtmosphere| trailer requested by the scene timeline instructions
SUMMARY_TRAILER = re.compile(r'\|([^|\n]*)\|([^|\n]*)\|')


def parse_line(line: str) -> TimelineEvent:
    """
    Parse one stripped, non-empty line.

    Args:
        line: Line of model output with surrounding whitespace removed

    Returns:
        TimelineEvent with dialogue set when the line holds a quoted passage
    """
    first = line.find(QUOTE)
    last = line.rfind(QUOTE)

    if first != -1 and first < last:
        text = line[:first].strip()
        dialogue = line[first + 1:last].strip()
        return TimelineEvent(text=text, dialogue=dialogue or None)

    return TimelineEvent(text=line)


def parse_timeline(raw_text: str) -> List[TimelineEvent]:
    """
    Parse a model reply into timeline events.

    Args:
        raw_text: Raw reply text

    Returns:
        Non-empty list of events. When every line is blank, a single
        narration event holding the stripped input is returned.
    """
    timeline = []
    for line in raw_text.splitlines():
        line = line.strip()
        if not line:
            continue
        timeline.append(parse_line(line))

    if not timeline:
        logger.debug("No content lines in reply, using fallback event")
        timeline.append(TimelineEvent(text=raw_text.strip()))

    dialogue_count = sum(1 for event in timeline if event.dialogue is not None)
    logger.info(f"Parsed {len(timeline)} timeline events ({dialogue_count} with dialogue)")
    return timeline


def extract_summary(raw_text: str) -> Tuple[Optional[str], Optional[str]]:
    """
    Find the ``|summary|atmosphere|`` trailer in a reply.

    Args:
        raw_text: Raw reply text

    Returns:
        (summary, atmosphere); either is None when missing or blank
    """
    matches = SUMMARY_TRAILER.findall(raw_text)
    if not matches:
        return None, None

    summary, atmosphere = matches[-1]
    return summary.strip() or None, atmosphere.strip() or None
