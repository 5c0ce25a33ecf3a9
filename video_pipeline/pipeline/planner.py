"""
Prompt planning: (child profile, template, story variables) -> per-page prompts.

Planning is pure and deterministic. The same input always yields the same
prompts in the same order, so regenerating one slot never changes the text of
any other slot.
"""
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from video_pipeline.constants import DEFAULT_PRONOUNS, DEFAULT_VISUAL_STYLE
from video_pipeline.models.project import AssetKind
from video_pipeline.pipeline.errors import InvalidVariables
from video_pipeline.pipeline.templates import TemplateDefinition, get_template, validate_safe_zone

DEFAULT_MAIN_CHARACTER = "{childName}, a young child with a bright smile wearing comfortable play clothes"
DEFAULT_SIDEKICK = "a small, friendly companion animal"


@dataclass(frozen=True)
class PromptSpec:
    """What gets stored for one slot."""
    slot_key: str
    asset_kind: AssetKind
    prompt_text: str
    safe_zone: str


@dataclass(frozen=True)
class PagePrompt:
    page_key: str
    image_text: str
    audio_text: str
    safe_zone: str

    def specs(self) -> list[PromptSpec]:
        return [
            PromptSpec(f"{self.page_key}_image", AssetKind.IMAGE, self.image_text, self.safe_zone),
            PromptSpec(f"{self.page_key}_audio", AssetKind.AUDIO, self.audio_text, self.safe_zone),
        ]


class PromptPlanner:
    """Builds image and narration prompts from a template's page briefs."""

    def plan(
        self,
        child: Any,
        template_type: str,
        variables: dict[str, str],
        pages: Optional[Iterable[str]] = None,
        version: Optional[int] = None,
    ) -> list[PagePrompt]:
        """
        Plan prompts for every page of the template (or only ``pages``).

        Args:
            child: Child profile (anything with name/pronouns/child_description/
                   sidekick_description attributes, or None)
            template_type: Template type, e.g. "wish-button"
            variables: Story variables keyed by their camelCase names
            pages: Optional page keys to restrict output to
            version: Template version; newest when None

        Raises:
            InvalidVariables: a required narrative variable is absent or blank
            ValidationError: unknown template type, version or page key
        """
        template = get_template(template_type, version)
        context = self._build_context(template, child, variables)
        template = template.resolve(context)

        if pages is None:
            selected = template.pages
        else:
            wanted = set(pages)
            for page_key in wanted:
                template.page(page_key)
            # Template order, not request order
            selected = tuple(page for page in template.pages if page.key in wanted)

        prompts = []
        for page in selected:
            zone = validate_safe_zone(template.template_type, page.safe_zone)
            brief = page.image_brief.format_map(context)
            image_text = f"{brief}. {context['visualStyle']}. {zone.composition}"
            prompts.append(PagePrompt(
                page_key=page.key,
                image_text=image_text,
                audio_text=page.narration.format_map(context),
                safe_zone=zone.key,
            ))
        return prompts

    def plan_specs(self, child: Any, template_type: str, variables: dict[str, str], **kwargs) -> list[PromptSpec]:
        """Flatten :meth:`plan` into per-slot specs (``<page>_image``, ``<page>_audio``)."""
        return [spec for page in self.plan(child, template_type, variables, **kwargs) for spec in page.specs()]

    @staticmethod
    def _build_context(template: TemplateDefinition, child: Any, variables: dict[str, str]) -> dict[str, str]:
        cleaned = {
            key: value.strip()
            for key, value in (variables or {}).items()
            if isinstance(value, str) and value.strip()
        }

        missing = [key for key in template.required_variables if key not in cleaned]
        if missing:
            raise InvalidVariables(template.template_type, missing)

        context = dict(template.cosmetic_defaults)
        context.update(cleaned)

        pronouns = context.get("pronouns") or getattr(child, "pronouns", None) or DEFAULT_PRONOUNS
        subject = pronouns.split("/")[0].strip().lower() or "they"
        context["pronouns"] = pronouns
        context["pronoun"] = subject
        context["Pronoun"] = subject.capitalize()

        context["visualStyle"] = context.get("visualStyle") or DEFAULT_VISUAL_STYLE
        context["mainCharacter"] = (
            context.get("mainCharacter")
            or getattr(child, "child_description", None)
            or DEFAULT_MAIN_CHARACTER.format(childName=context["childName"])
        )
        context["sidekick"] = (
            context.get("sidekick")
            or getattr(child, "sidekick_description", None)
            or DEFAULT_SIDEKICK
        )

        if "wishResultItems" in context:
            context["wishResultItemsUpper"] = context["wishResultItems"].upper()
        if "targetLetter" in context:
            context["targetLetter"] = context["targetLetter"].upper()
        return context
