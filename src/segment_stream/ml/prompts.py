"""Prompt parsing for the CLI and the interactive prompt update.

Grammar, one prompt per string::

    shoe                       text only
    shoe;pos:480,290,110,360   text plus a positive exemplar box
    pos:480,290,110,360        visual only
    neg:10,10,40,40            negative exemplar box

Parts are separated by ``;``; boxes are ``x,y,w,h`` in pixels.
"""

import logging
import sys
from typing import Callable, List, Optional, Sequence, TextIO

from segment_stream.ml.types import Prompt, PromptBox

logger = logging.getLogger(__name__)

BOX_LABELS = {"pos": True, "neg": False}
NO_PROMPT_MESSAGE = 'No prompt. Use -p "text" or -p "text;pos:x,y,w,h"'


def parse_box(label: str, coords: str) -> PromptBox:
    """Parse the ``x,y,w,h`` part of a box prompt.

    Raises:
        ValueError: If the coordinates are malformed
    """
    values = [v.strip() for v in coords.split(",")]
    if len(values) != 4:
        raise ValueError(f"Box prompt needs 4 values x,y,w,h, got '{coords}'")
    try:
        x, y, w, h = (float(v) for v in values)
    except ValueError:
        raise ValueError(f"Box prompt has non-numeric values: '{coords}'")
    return PromptBox(x=x, y=y, w=w, h=h, positive=BOX_LABELS[label])


def parse_prompt(raw: str) -> Prompt:
    """Parse one prompt string.

    Raises:
        ValueError: If the prompt is empty or malformed
    """
    text: Optional[str] = None
    boxes: List[PromptBox] = []

    for part in (p.strip() for p in raw.split(";")):
        if not part:
            continue
        head, sep, tail = part.partition(":")
        if sep and head.strip().lower() in BOX_LABELS:
            boxes.append(parse_box(head.strip().lower(), tail))
        elif text is None:
            text = part
        else:
            raise ValueError(f"Prompt '{raw}' has more than one text part")

    if text is None and not boxes:
        raise ValueError(f"Empty prompt: '{raw}'")

    return Prompt(text=text, boxes=tuple(boxes))


def parse_prompts(raw: Sequence[str]) -> List[Prompt]:
    """Parse a list of prompt strings.

    Raises:
        ValueError: If the list is empty or any prompt is malformed
    """
    if not raw:
        raise ValueError(NO_PROMPT_MESSAGE)
    return [parse_prompt(item) for item in raw]


def parse_prompt_line(line: str) -> Optional[List[Prompt]]:
    """Parse a ``|``-separated line of prompts.

    Returns:
        Parsed prompts, or None if the line is blank (keep current prompts)
    """
    parts = [p.strip() for p in line.strip().split("|") if p.strip()]
    if not parts:
        return None
    return parse_prompts(parts)


def read_prompt_update(
    input_fn: Optional[Callable[[], str]] = None,
    stream: Optional[TextIO] = None,
) -> Optional[List[Prompt]]:
    """Ask on the terminal for replacement prompts.

    Blocks until a line is entered. Invalid input keeps the current prompts.

    Returns:
        New prompts, or None to keep the current ones
    """
    input_fn = input_fn or sys.stdin.readline
    stream = stream if stream is not None else sys.stderr
    stream.write("New prompt(s) (split with `|`, empty keeps current): ")
    stream.flush()

    line = input_fn()
    try:
        return parse_prompt_line(line)
    except ValueError as e:
        logger.error(f"Ignoring prompt update: {e}")
        return None
