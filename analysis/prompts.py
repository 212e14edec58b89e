"""Prompt set for the vision collaborator."""

from dataclasses import dataclass


@dataclass(frozen=True)
class PromptTemplate:
    system: str
    temperature: float
    template: str

    def render(self, **kwargs) -> str:
        return self.template.format(**kwargs).strip()


BASIC_SCORES = PromptTemplate(
    system="You are a fashion analysis assistant.",
    temperature=0.2,
    template="""
Analyze this outfit image. Respond with a JSON object using exactly these camelCase fields:
{{
  "categories": {{"<category>": <score 0-1>, ...}},
  "styleAttributes": {{"casual": <0-1>, "formal": <0-1>, "business": <0-1>, "elegant": <0-1>, "trendy": <0-1>, "sporty": <0-1>}},
  "colorAnalysis": {{"dominant": "<color>", "palette": ["<color>", ...], "contrast": "<low|medium|high>", "harmony": "<description>"}},
  "comfort": <score 0-100>,
  "fitConfidence": <score 0-100>,
  "colorHarmony": <score 0-100>
}}
Return ONLY the JSON object with no additional text.
""",
)

ITEMIZED_ANALYSIS = PromptTemplate(
    system="You are an expert fashion analysis AI providing detailed, structured JSON output.",
    temperature=0.1,
    template="""
Analyze the outfit in the image in detail. Identify each clothing item (type, color, pattern,
material, fit) and each accessory (type, color, material, position). Score the overall style
profile, list the dominant colors as hex codes, the overall patterns, the most suitable season
and the occasions the outfit would suit. State whether a bottom garment (pants, skirt, shorts)
is clearly visible.
Respond with a JSON object using exactly these fields:
{{
  "style": {{"casual": <0-1>, "formal": <0-1>, ...}},
  "clothingItems": [{{"type": "", "color": "", "pattern": "", "material": "", "fit": "", "confidence": <0-1>}}],
  "accessories": [{{"type": "", "color": "", "material": "", "position": "", "confidence": <0-1>}}],
  "dominantColors": ["#rrggbb", ...],
  "patterns": ["", ...],
  "season": "",
  "occasions": ["", ...],
  "hasBottomGarment": <true|false>
}}
Return ONLY the JSON object.
""",
)

STYLE_SUGGESTIONS = PromptTemplate(
    system="You are a fashion stylist assistant.",
    temperature=0.7,
    template="""
I'm wearing this outfit for "{occasion}". Based on the image, give 3-5 specific suggestions
to improve it for that occasion.
Respond with a JSON array of strings, for example ["Add a belt", "Consider darker shoes"].
Return ONLY the JSON array.
""",
)
