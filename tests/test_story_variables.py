from video_pipeline.services.story_variables import (
    WishButtonVariables,
    fallback_variables,
    suggest_story_variables,
)


class FakeLLM:
    """Stands in for a chat model; ``with_structured_output`` returns itself."""

    def __init__(self, output=None, error=None):
        self.output = output
        self.error = error
        self.schema = None
        self.messages = None

    def with_structured_output(self, schema):
        self.schema = schema
        return self

    def invoke(self, messages):
        self.messages = messages
        if self.error:
            raise self.error
        return self.output


def _model_output(**overrides):
    values = {
        "visualStyle": "Studio Ghibli Style",
        "mainCharacter": "Mia, a curious girl in a feathered cape",
        "sidekick": "a sleepy barn owl named Hoot",
        "wishResultItems": "owl feathers",
        "buttonLocation": "hollow of an old oak tree",
        "magicButton": "amber button shaped like an owl eye",
        "chaoticActions": "hoot all night and flutter everywhere",
        "realizationEmotion": "tired and grumpy",
        "missedSimpleThing": "a quiet night's sleep",
        "finalScene": "moonlit meadow with one owl on a branch",
    }
    values.update(overrides)
    return values


def test_fallback_knows_a_few_themes():
    assert fallback_variables("Mia", "Dogs")["sidekick"].endswith("golden retriever puppy with a wagging tail")
    assert "pumpkin" in fallback_variables("Mia", "halloween")["magicButton"]
    assert fallback_variables("Mia", " space ")["buttonLocation"] == "space station control room"

    generic = fallback_variables("Mia", "trains")
    assert generic["buttonLocation"] == "magical garden"
    assert generic["mainCharacter"].startswith("Mia,")
    assert set(generic) == set(WishButtonVariables.model_fields)


async def test_llm_suggestion_is_used():
    llm = FakeLLM(output=WishButtonVariables(**_model_output()))

    suggestion = await suggest_story_variables("Mia", "owls", age=5, llm=llm)

    assert suggestion.source == "llm"
    assert suggestion.variables["sidekick"] == "a sleepy barn owl named Hoot"
    assert suggestion.variables["childName"] == "Mia"
    assert suggestion.variables["theme"] == "owls"
    assert llm.schema is WishButtonVariables
    assert "5-year-old who loves owls" in llm.messages[1].content


async def test_plain_dict_output_is_accepted_and_trimmed():
    llm = FakeLLM(output=_model_output(finalScene="  moonlit meadow  "))

    suggestion = await suggest_story_variables("Mia", "owls", llm=llm)

    assert suggestion.source == "llm"
    assert suggestion.variables["finalScene"] == "moonlit meadow"


async def test_llm_error_falls_back_to_theme_defaults():
    llm = FakeLLM(error=RuntimeError("rate limited"))

    suggestion = await suggest_story_variables("Mia", "space", llm=llm)

    assert suggestion.source == "fallback"
    assert suggestion.variables["magicButton"] == "silver button shaped like a tiny rocket ship"
    assert suggestion.variables["childName"] == "Mia"
    assert suggestion.variables["theme"] == "space"


async def test_blank_field_falls_back():
    llm = FakeLLM(output=_model_output(sidekick="   "))

    suggestion = await suggest_story_variables("Mia", "dogs", llm=llm)

    assert suggestion.source == "fallback"
    assert suggestion.variables["sidekick"] == "a small, fluffy golden retriever puppy with a wagging tail"


async def test_model_cannot_override_child_name():
    llm = FakeLLM(output={**_model_output(), "childName": "Someone Else", "theme": "robots"})

    suggestion = await suggest_story_variables("Mia", "owls", llm=llm)

    assert suggestion.variables["childName"] == "Mia"
    assert suggestion.variables["theme"] == "owls"
