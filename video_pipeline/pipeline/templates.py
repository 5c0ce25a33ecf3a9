"""
Template registry: slot manifests, page briefs, safe zones and render payloads.

A template is identified by ``(template_type, version)``. Projects pin the
version they were created with, so a version's slot list and payload shape are
never edited in place; changes ship as a new version.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from typing import Any, Optional

from video_pipeline.constants import (
    DEFAULT_BACKGROUND_MUSIC_VOLUME,
    DEFAULT_CHILD_AGE,
    DEFAULT_NAME_VIDEO_MUSIC_VOLUME,
)
from video_pipeline.models.project import AssetKind
from video_pipeline.pipeline.errors import ValidationError


# ============================================================================
# SAFE ZONES
# ============================================================================

@dataclass(frozen=True)
class SafeZone:
    key: str
    description: str
    composition: str
    templates: tuple[str, ...]


SAFE_ZONES: dict[str, SafeZone] = {
    zone.key: zone
    for zone in (
        SafeZone(
            "left_safe",
            "Character on right side, left area clear for text",
            "character positioned in the right half of the frame, left half of the image kept clean "
            "and uncluttered for overlaid text",
            ("wish-button",),
        ),
        SafeZone(
            "right_safe",
            "Character on left side, right area clear for text",
            "composition anchored to the left side of the image, right half of the image is intentionally "
            "empty with a soft, uncluttered pastel background for overlaying text",
            ("wish-button",),
        ),
        SafeZone(
            "center_safe",
            "Decorative frame with completely empty center",
            "decorative thematic border around the outer edges only, the entire center left completely "
            "empty for text, no characters anywhere in the image",
            ("lullaby", "letter-hunt", "name-video"),
        ),
        SafeZone(
            "intro_safe",
            "Opening frame with space for a title",
            "welcoming decorative border around the edges with the upper center clear for title text, "
            "no characters anywhere in the image",
            ("lullaby",),
        ),
        SafeZone(
            "outro_safe",
            "Closing frame with space for a farewell message",
            "peaceful decorative border around the edges with the center clear for a farewell message, "
            "no characters anywhere in the image",
            ("lullaby",),
        ),
        SafeZone(
            "slideshow",
            "Full frame content for slideshow presentation",
            "complete, balanced composition that fills the frame with a clear focal point and no embedded text",
            ("lullaby", "letter-hunt"),
        ),
        SafeZone(
            "frame",
            "Frame composition with center area empty for title text",
            "soothing decorative frame of stars, moons and soft clouds around the edges, center completely empty",
            ("lullaby",),
        ),
        SafeZone(
            "all_ok",
            "General composition without specific restrictions",
            "balanced, engaging composition with the subject positioned naturally in the frame",
            ("wish-button", "lullaby", "letter-hunt", "name-video"),
        ),
    )
}


def validate_safe_zone(template_type: str, safe_zone: str) -> SafeZone:
    """Return the safe zone, or raise if it is unknown or not usable with the template."""
    zone = SAFE_ZONES.get(safe_zone)
    if zone is None:
        raise ValidationError(
            f"Unknown safe zone '{safe_zone}'. Must be one of: {', '.join(SAFE_ZONES)}"
        )
    if template_type not in zone.templates:
        raise ValidationError(f"Safe zone '{safe_zone}' is not supported by template {template_type}")
    return zone


# ============================================================================
# SLOT MANIFESTS
# ============================================================================

@dataclass(frozen=True)
class PageDefinition:
    key: str
    image_brief: str      # str.format template over the planner's context
    narration: str
    safe_zone: str


@dataclass(frozen=True)
class SlotDefinition:
    key: str
    kind: AssetKind
    page: Optional[str] = None
    library_tag: Optional[str] = None

    @property
    def is_library(self) -> bool:
        """Library slots are filled from approved reusable assets, never from a provider."""
        return self.library_tag is not None


@dataclass(frozen=True)
class TemplateDefinition:
    template_type: str
    version: int
    composition: str
    required_variables: tuple[str, ...]
    cosmetic_defaults: dict[str, str]
    pages: tuple[PageDefinition, ...]
    library_slots: tuple[SlotDefinition, ...] = field(default_factory=tuple)
    # Repeated once per letter of childName, between the first and the remaining pages
    letter_page: Optional[PageDefinition] = None

    def resolve(self, variables: Optional[dict[str, Any]]) -> "TemplateDefinition":
        """
        The concrete page list for one set of story variables.

        Templates without a letter page are returned unchanged. For the others,
        ``letter{n}`` pages are inserted after the first page, one per letter of
        the child's name, with ``{letter}`` filled in.
        """
        if self.letter_page is None:
            return self
        letters = name_letters((variables or {}).get("childName"))
        letter_pages = tuple(
            PageDefinition(
                f"letter{position}",
                self.letter_page.image_brief.replace("{letter}", letter),
                self.letter_page.narration.replace("{letter}", letter),
                self.letter_page.safe_zone,
            )
            for position, letter in enumerate(letters, start=1)
        )
        return replace(self, pages=self.pages[:1] + letter_pages + self.pages[1:], letter_page=None)

    @property
    def slots(self) -> list[SlotDefinition]:
        slots: list[SlotDefinition] = []
        for page in self.pages:
            slots.append(SlotDefinition(f"{page.key}_image", AssetKind.IMAGE, page=page.key))
            slots.append(SlotDefinition(f"{page.key}_audio", AssetKind.AUDIO, page=page.key))
        slots.extend(self.library_slots)
        return slots

    @property
    def slot_keys(self) -> list[str]:
        return [slot.key for slot in self.slots]

    @property
    def page_keys(self) -> list[str]:
        return [page.key for page in self.pages]

    def slot(self, slot_key: str) -> SlotDefinition:
        for slot in self.slots:
            if slot.key == slot_key:
                return slot
        raise ValidationError(
            f"Unknown slot '{slot_key}' for template {self.template_type} v{self.version}",
            slot_key=slot_key,
        )

    def page(self, page_key: str) -> PageDefinition:
        for page in self.pages:
            if page.key == page_key:
                return page
        raise ValidationError(
            f"Unknown page '{page_key}' for template {self.template_type} v{self.version}",
            page_key=page_key,
        )


def name_letters(child_name: Optional[str]) -> list[str]:
    """Uppercase letters of a name, in order; spaces, hyphens and apostrophes are skipped."""
    return [char for char in (child_name or "").upper() if char.isalpha()]


def _background_music(template_type: str) -> SlotDefinition:
    return SlotDefinition(
        "background_music",
        AssetKind.AUDIO,
        library_tag=f"background_music:{template_type}",
    )


WISH_BUTTON_V1 = TemplateDefinition(
    template_type="wish-button",
    version=1,
    composition="WishButton",
    required_variables=(
        "childName", "theme", "wishResultItems", "buttonLocation", "magicButton",
        "chaoticActions", "realizationEmotion", "missedSimpleThing", "finalScene",
    ),
    cosmetic_defaults={
        "visualStyle": "",
        "pronouns": "",
        "sidekick": "",
        "mainCharacter": "",
    },
    pages=(
        PageDefinition(
            "page1",
            "{mainCharacter} and {sidekick} in a cheerful outdoor {theme} setting, "
            "storybook title in playful hand-drawn lettering on the right side",
            "A Wish Button for {childName}",
            "right_safe",
        ),
        PageDefinition(
            "page2",
            "{mainCharacter} daydreaming and playing with two or three {wishResultItems}, {sidekick} nearby",
            "{childName} loved {wishResultItems}. Not just a little, a lot! More {wishResultItems}, more everything!",
            "right_safe",
        ),
        PageDefinition(
            "page3",
            "{mainCharacter} discovering {magicButton} in the {buttonLocation}, curious and amazed expression",
            "One day, {childName} found a shiny button in the {buttonLocation}. "
            "It said: 'PRESS FOR MORE {wishResultItemsUpper}.'",
            "right_safe",
        ),
        PageDefinition(
            "page4",
            "{mainCharacter} pressing {magicButton}, the first {wishResultItems} appearing in a poof of "
            "magical sparkles, excited expression",
            "{childName} pressed the button. POOF! Out came {wishResultItems}. Then more! And more!",
            "right_safe",
        ),
        PageDefinition(
            "page5",
            "{mainCharacter} overwhelmed as the {wishResultItems} {chaoticActions}, playful mess of "
            "bouncy harmless things",
            "But soon, the {wishResultItems} started to {chaoticActions}. There were too many! It was too much.",
            "right_safe",
        ),
        PageDefinition(
            "page6",
            "{mainCharacter} sitting alone in a messy room, reflective and {realizationEmotion}",
            "{childName} looked around. {Pronoun} had everything {pronoun} wished for. "
            "But {pronoun} felt {realizationEmotion}. {Pronoun} missed {missedSimpleThing}.",
            "right_safe",
        ),
        PageDefinition(
            "page7",
            "{mainCharacter} pressing {magicButton} with calm determination, soft magical glow",
            "So {pronoun} pressed the button one last time. "
            "'I wish things could go back to how they were,' {pronoun} whispered.",
            "right_safe",
        ),
        PageDefinition(
            "page8",
            "{mainCharacter} and {sidekick} resting in a calm, cozy {finalScene}",
            "Now {childName} had what {pronoun} really wanted: just enough. Just right.",
            "right_safe",
        ),
        PageDefinition(
            "page9",
            "{mainCharacter} and {sidekick} waving goodbye under a tree at sunset, "
            "'The End' in soft lettering on the right side",
            "The End.",
            "right_safe",
        ),
    ),
    library_slots=(_background_music("wish-button"),),
)


LULLABY_V1 = TemplateDefinition(
    template_type="lullaby",
    version=1,
    composition="Lullaby",
    required_variables=("childName",),
    cosmetic_defaults={"childTheme": "stars", "visualStyle": "", "pronouns": ""},
    pages=(
        PageDefinition(
            "intro",
            "gentle bedtime border of {childTheme}, moons and soft clouds in deep blues and purples",
            "Goodnight, {childName}. It's time to rest.",
            "intro_safe",
        ),
        PageDefinition(
            "outro",
            "sleepy border of {childTheme} drifting among twinkling stars in a deep night sky",
            "Sweet dreams, {childName}, my little star.",
            "outro_safe",
        ),
    ),
    library_slots=(_background_music("lullaby"),),
)


LETTER_HUNT_V1 = TemplateDefinition(
    template_type="letter-hunt",
    version=1,
    composition="LetterHunt",
    required_variables=("childName", "targetLetter"),
    cosmetic_defaults={"childTheme": "monsters", "visualStyle": "", "pronouns": ""},
    pages=(
        PageDefinition(
            "title",
            "a large bold uppercase letter {targetLetter} as the star of the image, "
            "friendly {childTheme} peeking around the edges",
            "{childName}'s letter hunt!",
            "all_ok",
        ),
        PageDefinition(
            "sign",
            "a bright street sign showing a big letter {targetLetter}, a friendly {childTheme} pointing at it",
            "On signs",
            "slideshow",
        ),
        PageDefinition(
            "book",
            "an open picture book with a big letter {targetLetter} on the page, a friendly {childTheme} reading along",
            "On books",
            "slideshow",
        ),
        PageDefinition(
            "grocery",
            "a grocery store shelf with a cereal box showing a big letter {targetLetter}, "
            "a friendly {childTheme} with a shopping cart",
            "Even in the grocery store!",
            "slideshow",
        ),
        PageDefinition(
            "ending",
            "a giant letter {targetLetter} with confetti and cheerful {childTheme} celebrating around it",
            "Have fun finding the letter {targetLetter}, {childName}!",
            "all_ok",
        ),
    ),
    library_slots=(_background_music("letter-hunt"),),
)


NAME_VIDEO_V1 = TemplateDefinition(
    template_type="name-video",
    version=1,
    composition="NameVideo",
    required_variables=("childName",),
    cosmetic_defaults={"childTheme": "rainbows", "visualStyle": "", "pronouns": ""},
    pages=(
        PageDefinition(
            "intro",
            "cheerful border of {childTheme} around the edges, the center left empty for a name",
            "This is {childName}!",
            "center_safe",
        ),
        PageDefinition(
            "outro",
            "playful border of {childTheme} and confetti around the edges, the center left empty for a name",
            "That spells {childName}!",
            "center_safe",
        ),
    ),
    letter_page=PageDefinition(
        "letter",
        "a big bold uppercase letter {letter} made of friendly {childTheme}, bright and centered",
        "{letter}!",
        "all_ok",
    ),
    library_slots=(_background_music("name-video"),),
)


TEMPLATES: dict[str, dict[int, TemplateDefinition]] = {}
for _definition in (WISH_BUTTON_V1, LULLABY_V1, LETTER_HUNT_V1, NAME_VIDEO_V1):
    TEMPLATES.setdefault(_definition.template_type, {})[_definition.version] = _definition


def get_template(template_type: str, version: Optional[int] = None) -> TemplateDefinition:
    """Look up a template definition. ``version=None`` means the newest version."""
    versions = TEMPLATES.get(template_type)
    if not versions:
        raise ValidationError(
            f"Unknown template type '{template_type}'. Must be one of: {', '.join(sorted(TEMPLATES))}"
        )
    if version is None:
        return versions[max(versions)]
    if version not in versions:
        raise ValidationError(f"Template {template_type} has no version {version}")
    return versions[version]


def project_template(project: Any) -> TemplateDefinition:
    """The template a project is pinned to, resolved against its story variables."""
    template = get_template(project.template_type, project.template_version)
    return template.resolve(project.story_variables)


# ============================================================================
# RENDER PAYLOADS
# ============================================================================

@dataclass
class RenderPayload:
    composition: str
    input_props: dict[str, Any]
    duration_seconds: int
    title: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "composition": self.composition,
            "inputProps": self.input_props,
            "durationSeconds": self.duration_seconds,
            "title": self.title,
        }


class PayloadStrategy(ABC):
    """Builds the render backend input for one (template_type, version)."""

    template: TemplateDefinition

    def build(self, variables: dict[str, str], child_age: Optional[int], asset_urls: dict[str, str]) -> RenderPayload:
        missing = [key for key in self.template.resolve(variables).slot_keys if not asset_urls.get(key)]
        if missing:
            # Readiness is checked before this point; reaching here means the caller skipped it
            raise ValidationError(f"Render payload is missing asset URLs for: {', '.join(missing)}")
        return self._build(variables, child_age or DEFAULT_CHILD_AGE, asset_urls)

    @abstractmethod
    def _build(self, variables: dict[str, str], child_age: int, asset_urls: dict[str, str]) -> RenderPayload:
        ...

    @staticmethod
    def _ready(url: str) -> dict[str, str]:
        return {"url": url, "status": "ready"}


class WishButtonPayloadV1(PayloadStrategy):
    template = WISH_BUTTON_V1
    seconds_per_page = 8

    def _build(self, variables, child_age, asset_urls):
        child_name = variables["childName"]
        assets = {key: self._ready(asset_urls[key]) for key in self.template.slot_keys}
        return RenderPayload(
            composition=self.template.composition,
            input_props={
                "childName": child_name,
                "theme": variables["theme"],
                "storyVariables": dict(variables),
                "assets": assets,
            },
            duration_seconds=self.seconds_per_page * len(self.template.pages),
            title=f"Wish Button Story for {child_name}",
        )


class LullabyPayloadV1(PayloadStrategy):
    template = LULLABY_V1
    duration = 90

    def _build(self, variables, child_age, asset_urls):
        child_name = variables["childName"]
        return RenderPayload(
            composition=self.template.composition,
            input_props={
                "childName": child_name,
                "childAge": child_age,
                "childTheme": variables.get("childTheme") or self.template.cosmetic_defaults["childTheme"],
                "introImage": asset_urls["intro_image"],
                "introAudio": asset_urls["intro_audio"],
                "outroImage": asset_urls["outro_image"],
                "outroAudio": asset_urls["outro_audio"],
                "backgroundMusicUrl": asset_urls["background_music"],
                "backgroundMusicVolume": DEFAULT_BACKGROUND_MUSIC_VOLUME,
                "duration": self.duration,
            },
            duration_seconds=self.duration,
            title=f"{child_name}'s Lullaby",
        )


class LetterHuntPayloadV1(PayloadStrategy):
    template = LETTER_HUNT_V1
    duration = 37

    # slot key -> composition prop name
    prop_names = {
        "title_image": "titleCard",
        "title_audio": "titleAudio",
        "sign_image": "signImage",
        "sign_audio": "signAudio",
        "book_image": "bookImage",
        "book_audio": "bookAudio",
        "grocery_image": "groceryImage",
        "grocery_audio": "groceryAudio",
        "ending_image": "endingImage",
        "ending_audio": "endingAudio",
        "background_music": "backgroundMusic",
    }

    def _build(self, variables, child_age, asset_urls):
        child_name = variables["childName"]
        letter = variables["targetLetter"].strip().upper()
        return RenderPayload(
            composition=self.template.composition,
            input_props={
                "childName": child_name,
                "targetLetter": letter,
                "childTheme": variables.get("childTheme") or self.template.cosmetic_defaults["childTheme"],
                "childAge": child_age,
                "assets": {
                    prop: self._ready(asset_urls[slot_key])
                    for slot_key, prop in self.prop_names.items()
                },
            },
            duration_seconds=self.duration,
            title=f"{child_name}'s Letter Hunt: Letter {letter}",
        )


class NameVideoPayloadV1(PayloadStrategy):
    """Intro, one segment per letter of the name, outro; two seconds each."""

    template = NAME_VIDEO_V1
    seconds_per_segment = 2

    def _build(self, variables, child_age, asset_urls):
        child_name = variables["childName"]
        letters = name_letters(child_name)
        segments = [
            {
                "letter": letter,
                "image": self._ready(asset_urls[f"letter{position}_image"]),
                "audio": self._ready(asset_urls[f"letter{position}_audio"]),
            }
            for position, letter in enumerate(letters, start=1)
        ]
        duration = (len(letters) + 2) * self.seconds_per_segment
        return RenderPayload(
            composition=self.template.composition,
            input_props={
                "childName": child_name,
                "childAge": child_age,
                "childTheme": variables.get("childTheme") or self.template.cosmetic_defaults["childTheme"],
                "introImage": asset_urls["intro_image"],
                "introAudio": asset_urls["intro_audio"],
                "outroImage": asset_urls["outro_image"],
                "outroAudio": asset_urls["outro_audio"],
                "letters": segments,
                "backgroundMusicUrl": asset_urls["background_music"],
                "backgroundMusicVolume": DEFAULT_NAME_VIDEO_MUSIC_VOLUME,
                "duration": duration,
            },
            duration_seconds=duration,
            title=f"{child_name}'s Name Video",
        )


PAYLOAD_STRATEGIES: dict[tuple[str, int], PayloadStrategy] = {
    (strategy.template.template_type, strategy.template.version): strategy
    for strategy in (WishButtonPayloadV1(), LullabyPayloadV1(), LetterHuntPayloadV1(), NameVideoPayloadV1())
}


def get_payload_strategy(template_type: str, version: int) -> PayloadStrategy:
    strategy = PAYLOAD_STRATEGIES.get((template_type, version))
    if strategy is None:
        raise ValidationError(f"No render payload strategy for {template_type} v{version}")
    return strategy
