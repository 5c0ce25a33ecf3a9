"""
Story-variable suggestions for the wish-button template.

An LLM proposes the narrative variables for a child and theme. When the model
fails or returns blanks, theme defaults are used instead so the operator always
gets a complete, editable set.
"""
from dataclasses import dataclass
from typing import Any, Optional
import asyncio
import logging

from langchain_core.messages import HumanMessage, SystemMessage
from pydantic import BaseModel, Field

from video_pipeline.constants import DEFAULT_CHILD_AGE
from video_pipeline.services.llm import get_llm

logger = logging.getLogger(__name__)


class WishButtonVariables(BaseModel):
    """Narrative variables for "The Wish Button", each a plain sentence or phrase."""
    visualStyle: str = Field(description="One art style, e.g. '2D Pixar Style'")
    mainCharacter: str = Field(description="The child as a character in one sentence")
    sidekick: str = Field(description="A small companion animal or creature in one sentence")
    wishResultItems: str = Field(description="What the child wishes for more of")
    buttonLocation: str = Field(description="Where the magic button is found")
    magicButton: str = Field(description="What the magic button looks like")
    chaoticActions: str = Field(description="What goes wrong when there are too many")
    realizationEmotion: str = Field(description="How the child feels on realizing it is too much")
    missedSimpleThing: str = Field(description="The simple thing lost in the chaos")
    finalScene: str = Field(description="Peaceful ending location")


@dataclass
class StoryVariableSuggestion:
    variables: dict[str, str]
    source: str  # "llm" or "fallback"


SYSTEM_PROMPT = (
    "You are an expert children's story writer who creates personalized, educational stories. "
    "Every value must be a simple text string."
)

VISUAL_STYLES = (
    '"2D Pixar Style", "Disney Animation Style", "Studio Ghibli Style", '
    '"Cartoon Network Style", or "Nick Jr Style"'
)


def _user_prompt(child_name: str, theme: str, age: int) -> str:
    return f"""Create personalized story variables for "The Wish Button" story for {child_name}, a {age}-year-old who loves {theme}.

Story structure:
- A child finds a magic wish button and gets what they want, but learns it's too much
- The story teaches moderation and appreciating what you have

Based on the {theme} theme, provide:
1. Visual Style: ONE art style that fits {theme}: {VISUAL_STYLES}
2. Main Character: {child_name} as a character in ONE clear sentence (appearance, personality, clothing in {theme} style)
3. Sidekick: a small companion animal or creature that fits {theme}, in ONE clear sentence
4. Wish Result Items: what a {theme}-loving child would want more of (e.g. "toy cars and trucks")
5. Button Location: a {theme}-themed place where they find the magic button
6. Magic Button: what the button looks like (e.g. "shiny red button shaped like a dog paw")
7. Chaotic Actions: what goes wrong when they get too many items
8. Realization Emotion: how they feel when they realize it's too much
9. Missed Simple Thing: what simple thing they lost or missed in the chaos
10. Final Scene: a peaceful ending location that fits {theme}

Keep everything age-appropriate for {age} years old."""


def fallback_variables(child_name: str, theme: str) -> dict[str, str]:
    """Deterministic defaults for the dogs, halloween and space themes, generic otherwise."""
    theme_defaults: dict[str, dict[str, str]] = {
        "dogs": {
            "visualStyle": "2D Pixar Style",
            "mainCharacter": f"{child_name}, a young child with bright eyes wearing a dog-themed t-shirt and comfortable play clothes",
            "sidekick": "a small, fluffy golden retriever puppy with a wagging tail",
            "wishResultItems": "puppies and dog toys",
            "buttonLocation": "dog park under a shady tree",
            "magicButton": "shiny red button shaped like a dog paw",
            "chaoticActions": "bark loudly and run around everywhere",
            "realizationEmotion": "overwhelmed and tired",
            "missedSimpleThing": "quiet cuddle time with just one puppy",
            "finalScene": "cozy living room with a single friendly dog",
        },
        "halloween": {
            "visualStyle": "Cartoon Network Style",
            "mainCharacter": f"{child_name}, a young child wearing a fun Halloween costume with a big smile",
            "sidekick": "a friendly little ghost with a cute hat",
            "wishResultItems": "pumpkins and Halloween treats",
            "buttonLocation": "spooky but friendly haunted garden",
            "magicButton": "glowing orange button shaped like a tiny pumpkin",
            "chaoticActions": "roll around and pile up everywhere",
            "realizationEmotion": "confused and a bit scared",
            "missedSimpleThing": "the peaceful moonlight",
            "finalScene": "calm pumpkin patch under the stars",
        },
        "space": {
            "visualStyle": "Disney Animation Style",
            "mainCharacter": f"{child_name}, a young child wearing a silver space suit with a helmet under their arm",
            "sidekick": "a small, round robot with blinking lights",
            "wishResultItems": "rockets and space toys",
            "buttonLocation": "space station control room",
            "magicButton": "silver button shaped like a tiny rocket ship",
            "chaoticActions": "zoom around and make loud rocket noises",
            "realizationEmotion": "dizzy and confused",
            "missedSimpleThing": "the quiet beauty of the stars",
            "finalScene": "peaceful observation deck overlooking Earth",
        },
    }
    generic = {
        "visualStyle": "2D Pixar Style",
        "mainCharacter": f"{child_name}, a young child with a bright smile wearing comfortable play clothes",
        "sidekick": "a small, friendly companion animal",
        "wishResultItems": "toys and treats",
        "buttonLocation": "magical garden",
        "magicButton": "shiny golden button with magical sparkles",
        "chaoticActions": "pile up and make a big mess",
        "realizationEmotion": "overwhelmed",
        "missedSimpleThing": "the peaceful quiet",
        "finalScene": "cozy room with just the right amount of everything",
    }
    return dict(theme_defaults.get(theme.strip().lower(), generic))


def _usable(output: Any) -> Optional[dict[str, str]]:
    if isinstance(output, BaseModel):
        output = output.model_dump()
    if not isinstance(output, dict):
        return None
    values = {}
    for field in WishButtonVariables.model_fields:
        value = output.get(field)
        if not isinstance(value, str) or not value.strip():
            logger.warning(f"Invalid or missing story variable {field}: {value!r}")
            return None
        values[field] = value.strip()
    return values


async def suggest_story_variables(
    child_name: str,
    theme: str,
    age: Optional[int] = None,
    provider: Optional[str] = None,
    llm=None,
) -> StoryVariableSuggestion:
    """
    Ask the LLM for wish-button variables. ``childName`` and ``theme`` are
    always set from the arguments, never from the model.
    """
    age = age or DEFAULT_CHILD_AGE
    logger.info(f"Generating wish-button story variables for {child_name} ({theme} theme)")

    messages = [
        SystemMessage(content=SYSTEM_PROMPT),
        HumanMessage(content=_user_prompt(child_name, theme, age)),
    ]
    variables = None
    try:
        structured_llm = (llm or get_llm(provider)).with_structured_output(WishButtonVariables)
        output = await asyncio.to_thread(structured_llm.invoke, messages)
        variables = _usable(output)
    except Exception as e:
        logger.error(f"Story variable generation failed, using theme defaults: {e}", exc_info=True)

    source = "llm"
    if variables is None:
        variables = fallback_variables(child_name, theme)
        source = "fallback"

    variables["childName"] = child_name
    variables["theme"] = theme
    return StoryVariableSuggestion(variables=variables, source=source)
