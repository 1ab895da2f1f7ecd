"""Prompt templates for listing analysis and script writing."""

from src.llm.schemas import VoiceSchema

DESCRIBE_IMAGE_SYSTEM = (
    "You are a real estate assistant. Briefly describe this photo of a property "
    "in 2-3 concise sentences. Focus only on the room type and the most visually "
    "important real estate features. Do not mention furniture, decor, or personal "
    "items. At the end, include a line: \"Establishing shot: Yes\" or "
    "\"Establishing shot: No\" depending on whether the image shows a wide front "
    "view of the house, typically used as the opening scene."
)

DESCRIBE_IMAGE_USER = "Describe this listing photo."

GROUP_IMAGES_SYSTEM = """
You are a real estate photo assistant.

Group property listing photos into clusters by the area or room they depict,
using common real estate terms like "Kitchen", "Exterior", or "Primary Bedroom".
Do not use generic names like "Room 1".

### Grouping Guidelines
- Each image belongs to one group only.
- Group images showing the same room or a visually connected area.
- Use "Great Room (Kitchen + Living + Dining)" only for clearly open-concept spaces.
- Combine front and back exterior shots into "Exterior" when either group is small.
- Only include groups with 2+ images unless the area is important (Exterior, Primary Bedroom).
- Skip laundry, garage, closets, hallways and single-image bathrooms unless exceptional.

### Output Format
Return ONLY a valid JSON array, no other text:
[
  { "groupName": "Exterior", "images": ["<filename>", "<filename>"] },
  { "groupName": "Primary Bedroom", "images": ["<filename>"] }
]
"""

PROPERTY_CONTEXT_SYSTEM = """
<PropertyInfo>
{property_info}
</PropertyInfo>

<Instructions>
- Create a concise property summary focused on key selling points for a 20-30 second social media video
- Highlight the features most likely to grab attention in a short video
- Include style, location appeal, and standout characteristics
- Keep it brief: this context guides several short script segments
</Instructions>
"""

SCRIPT_SYSTEM = "You write voiceover scripts for short real estate marketing videos."

SCRIPT_TEMPLATE = """
You are writing a {target_words}-word voiceover segment for a short real estate marketing video.

Output PLAIN TEXT only: no markdown, no annotations, no word counts.

<PropertyContext>
{property_context}
</PropertyContext>

<ImageDescriptions>
{image_descriptions}
</ImageDescriptions>

<VoiceGuidelines>
- Tone: {tone}
- Style: {style}
- Perspective: {perspective}
</VoiceGuidelines>
{prior_scripts}
<Constraints>
- TARGET: {target_words} words (within 5 words either way)
- PURPOSE: {purpose}
- This segment fills its share of a 20-30 second video{strictness}
</Constraints>

<Instructions>
{instructions}
- Do not name rooms directly; describe the experience of the space
- Continue naturally from the previous segments without repeating them
</Instructions>
"""

ESTABLISHING_INSTRUCTIONS = """- Open with an emotional hook that paints the lifestyle this home offers
- Mention the location naturally (the town or area, never the street address)
- Mention price or value only when it is a selling point"""

FEATURE_INSTRUCTIONS = """- Focus on the most compelling aspect of this {group_name}
- Use sensory language tied to daily life in the space"""

STRICT_NOTE = "\nIMPORTANT: the previous attempt was too long. Be even more concise."


def build_property_info(location, stats) -> str:
    """Bullet list of known listing facts (missing facts are omitted)."""
    rows = [
        ("Description", getattr(stats, "description", None)),
        ("Home Type", getattr(stats, "home_type", None)),
        ("Location", location),
        ("Price", getattr(stats, "price", None)),
        ("Bedrooms", getattr(stats, "bedrooms", None)),
        ("Bathrooms", getattr(stats, "bathrooms", None)),
        ("Square Feet", getattr(stats, "square_feet", None)),
        ("Lot Size", getattr(stats, "lot_size", None)),
        ("Year Built", getattr(stats, "year_built", None)),
    ]
    return "\n".join(f"- {label}: {value}" for label, value in rows if value)


def build_script_prompt(
    *,
    group_name: str,
    descriptions: list[str],
    property_context: str,
    prior_scripts: list[str],
    target_words: int,
    is_establishing_shot: bool,
    voice: VoiceSchema,
    strict: bool = False,
) -> str:
    prior = ""
    if prior_scripts:
        numbered = "\n".join(f"{i + 1}. {s}" for i, s in enumerate(prior_scripts))
        prior = f"\n<PreviousScripts>\n{numbered}\n</PreviousScripts>\n"

    if is_establishing_shot:
        purpose = "opening hook that introduces the property"
        instructions = ESTABLISHING_INSTRUCTIONS
    else:
        purpose = "feature highlight that builds desire"
        instructions = FEATURE_INSTRUCTIONS.format(group_name=group_name.lower())

    return SCRIPT_TEMPLATE.format(
        target_words=target_words,
        property_context=property_context,
        image_descriptions="\n".join(f"- {i + 1}: {d}" for i, d in enumerate(descriptions)),
        tone=voice.tone,
        style=voice.style,
        perspective=voice.perspective,
        prior_scripts=prior,
        purpose=purpose,
        strictness=STRICT_NOTE if strict else "",
        instructions=instructions,
    )
